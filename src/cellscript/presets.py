"""Built-in rule scripts.

Each preset declares its ``KIND`` and defines ``update`` plus the optional
``randomize`` and ``next`` hooks, so it can be loaded straight into a Stepper.
"""

from typing import Dict, List

LIFE = '''
KIND = "bool"

def update(self, neighbors):
    alive = sum(1 for v in neighbors if v)
    if self:
        return alive == 2 or alive == 3
    return alive == 3

def randomize():
    return random.random() < 0.3

def next(self):
    return not self
'''

HIGHLIFE = '''
KIND = "bool"
BIRTH = (3, 6)
SURVIVAL = (2, 3)

def update(self, neighbors):
    alive = sum(1 for v in neighbors if v)
    if self:
        return alive in SURVIVAL
    return alive in BIRTH

def randomize():
    return random.random() < 0.3

def next(self):
    return not self
'''

# B2/S34 on a six-neighbor lattice
HEX_LIFE = '''
KIND = "bool"

def update(self, neighbors):
    alive = sum(1 for v in neighbors if v)
    if self:
        return alive == 3 or alive == 4
    return alive == 2

def randomize():
    return random.random() < 0.3

def next(self):
    return not self
'''

WIREWORLD = '''
KIND = "int"
VOID, HEAD, TAIL, WIRE = 0, 1, 2, 3
CYCLE = {VOID: WIRE, WIRE: HEAD, HEAD: TAIL, TAIL: VOID}

def update(self, neighbors):
    if self == HEAD:
        return TAIL
    if self == TAIL:
        return WIRE
    if self == WIRE:
        heads = sum(1 for v in neighbors if v == HEAD)
        return HEAD if heads == 1 or heads == 2 else WIRE
    return VOID

def randomize():
    return random.randrange(4)

def next(self):
    return CYCLE.get(self, VOID)
'''

ROCK_PAPER_SCISSORS = '''
KIND = "int"
THRESHOLD = 3

def update(self, neighbors):
    predator = (self + 1) % 3
    hunters = sum(1 for v in neighbors if v == predator)
    return predator if hunters >= THRESHOLD else self

def randomize():
    return random.randrange(3)

def next(self):
    return (self + 1) % 3
'''

# Cells hold [u, v]; empty cells and dead neighbors count as the steady state [1, 0]
GRAY_SCOTT = '''
KIND = "sequence"
DU, DV = 0.16, 0.08
FEED, KILL = 0.035, 0.065
DT = 1.0

def concentrations(cell):
    if len(cell) != 2:
        return 1.0, 0.0
    return float(cell[0]), float(cell[1])

def update(self, neighbors):
    u, v = concentrations(self)
    if not neighbors:
        return [u, v]
    pairs = [concentrations(c) for c in neighbors]
    lap_u = sum(p[0] for p in pairs) / len(pairs) - u
    lap_v = sum(p[1] for p in pairs) / len(pairs) - v
    reaction = u * v * v
    u2 = u + DT * (DU * lap_u - reaction + FEED * (1.0 - u))
    v2 = v + DT * (DV * lap_v + reaction - (FEED + KILL) * v)
    return [min(max(u2, 0.0), 1.0), min(max(v2, 0.0), 1.0)]

def randomize():
    if random.random() < 0.05:
        return [0.5, 0.25]
    return [1.0, 0.0]

def next(self):
    u, v = concentrations(self)
    return [u, min(v + 0.1, 1.0)]
'''

PRESETS: Dict[str, str] = {
    "life": LIFE,
    "highlife": HIGHLIFE,
    "hex_life": HEX_LIFE,
    "wireworld": WIREWORLD,
    "rock_paper_scissors": ROCK_PAPER_SCISSORS,
    "gray_scott": GRAY_SCOTT,
}


def list_presets() -> List[str]:
    """Names of all built-in presets."""
    return sorted(PRESETS)


def get_preset(name: str) -> str:
    """Script text of a built-in preset.

    Raises:
        KeyError: If no preset has that name
    """
    try:
        return PRESETS[name]
    except KeyError:
        raise KeyError(f"Unknown preset {name!r}; available: {', '.join(list_presets())}") from None
