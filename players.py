import time

counter = 0

PLAYER_COLORS = ['#FF0000', '#00FF00', '#0000FF', '#FFFF00', '#FF00FF', '#00FFFF', '#FFA500', '#800080']

class Player(object):
    '''server side record of a connected player'''
    def __init__(self, conn, now=None):
        global counter
        now = time.time() if now is None else now
        self.conn = conn
        self.id = counter
        counter+=1
        self.name = f'Player{self.id}'
        self.x = 0
        self.y = 0
        self.direction = 1
        self.health = 100
        self.inventory = {}
        self.score = 0
        self.color = PLAYER_COLORS[self.id % len(PLAYER_COLORS)]
        self.join_time = now
        self.last_active = now
        self.comms_queue = []

    def collect(self, item, score=0):
        self.inventory[item] = self.inventory.get(item, 0) + 1
        self.score += score

    def __repr__(self):
        return self.name

    def __str__(self):
        return self.name

class ClientPlayer(object):
    '''public summary of a player, as sent to clients'''
    def __init__(self, player):
        self.id = player.id
        self.name = player.name
        self.x = player.x
        self.y = player.y
        self.direction = player.direction
        self.health = player.health
        self.inventory = dict(player.inventory)
        self.score = player.score
        self.color = player.color
        self.join_time = player.join_time
        self.last_active = player.last_active

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'x': self.x,
            'y': self.y,
            'direction': self.direction,
            'health': self.health,
            'inventory': dict(self.inventory),
            'score': self.score,
            'color': self.color,
            'joinTime': self.join_time,
            'lastActive': self.last_active,
        }

    def __repr__(self):
        return self.name

    def __str__(self):
        return self.name
