"""Static simulation configuration constants."""

MAX_TURNS = 12
DEFAULT_FIELD_SIZE = 8
ROSTER_SIZE = 24

ENERGY_MIN = 0
ENERGY_MAX = 100
HEALTH_MIN = 0
HEALTH_MAX = 100
BOND_MIN = 0
BOND_MAX = 100
STAT_MIN = 1

# kind: (energy cost, energy recovered, base gain, stat trained)
TRAINING_KINDS: dict[str, dict[str, object]] = {
    "speed": {"cost": 15, "recover": 0, "base_gain": 8, "stat": "speed", "bond": 1},
    "stamina": {"cost": 10, "recover": 0, "base_gain": 7, "stat": "stamina", "bond": 1},
    "power": {"cost": 15, "recover": 0, "base_gain": 8, "stat": "power", "bond": 1},
    "rest": {"cost": 0, "recover": 30, "base_gain": 0, "stat": None, "bond": 0},
    "media": {"cost": 0, "recover": 15, "base_gain": 0, "stat": None, "bond": 5},
}
TRAINING_ALIASES: dict[str, str] = {"social": "media", "recover": "rest"}
TRAINING_RANDOM_RANGE: tuple[float, float] = (0.8, 1.2)
REST_HEALTH_CHANCE = 0.30
REST_HEALTH_GAIN = 5

MOOD_MULTIPLIERS: dict[str, float] = {
    "excellent": 1.15,
    "great": 1.10,
    "good": 1.05,
    "normal": 1.00,
    "tired": 0.90,
    "bad": 0.80,
}

GROWTH_GRADES: dict[str, float] = {"S": 1.5, "A": 1.2, "B": 1.0, "C": 0.8, "D": 0.6}
RIVAL_GROWTH_POOL: tuple[str, ...] = ("S", "A", "B", "B", "C", "C", "D")

# Checked top-down; first threshold the bond reaches wins.
BOND_THRESHOLDS: tuple[tuple[int, float], ...] = (
    (80, 1.3),
    (60, 1.2),
    (40, 1.1),
    (20, 1.0),
    (0, 0.9),
)

# name: caps, stat growth multipliers, surface preference
BREEDS: dict[str, dict[str, dict[str, float]]] = {
    "Thoroughbred": {
        "caps": {"speed": 100, "stamina": 100, "power": 100},
        "growth": {"speed": 1.0, "stamina": 1.0, "power": 1.0},
        "surface": {"TURF": 1.0, "DIRT": 1.0},
    },
    "Arabian": {
        "caps": {"speed": 95, "stamina": 110, "power": 95},
        "growth": {"speed": 0.95, "stamina": 1.25, "power": 0.95},
        "surface": {"TURF": 1.08, "DIRT": 0.96},
    },
    "Quarter Horse": {
        "caps": {"speed": 110, "stamina": 90, "power": 105},
        "growth": {"speed": 1.25, "stamina": 0.85, "power": 1.15},
        "surface": {"TURF": 0.95, "DIRT": 1.08},
    },
}
DEFAULT_BREED = "Thoroughbred"

# name: optimal distance range (m), training growth multipliers
SPECIALIZATIONS: dict[str, dict[str, object]] = {
    "Sprinter": {
        "distance": (1000, 1400),
        "growth": {"speed": 1.25, "stamina": 0.90, "power": 1.20},
    },
    "Miler": {
        "distance": (1400, 1800),
        "growth": {"speed": 1.10, "stamina": 1.15, "power": 1.12},
    },
    "Stayer": {
        "distance": (1800, 2400),
        "growth": {"speed": 0.95, "stamina": 1.30, "power": 0.90},
    },
}
DISTANCE_FIT_BONUS = 1.15
# Lost per 100m outside the optimal range, never below the floor.
DISTANCE_FIT_PENALTY = 0.02
DISTANCE_FIT_FLOOR = 0.8

# category: ordered (phase name, share of distance)
RACE_PHASES: dict[str, tuple[tuple[str, float], ...]] = {
    "SPRINT": (("break", 0.10), ("early", 0.40), ("stretch", 0.50)),
    "MILE": (("break", 0.10), ("early", 0.30), ("middle", 0.35), ("stretch", 0.25)),
    "MEDIUM": (("break", 0.08), ("early", 0.27), ("middle", 0.35), ("late", 0.15), ("stretch", 0.15)),
    "LONG": (
        ("break", 0.06),
        ("early", 0.24),
        ("middle1", 0.25),
        ("middle2", 0.25),
        ("late", 0.12),
        ("stretch", 0.08),
    ),
}

# phase family: (stat weights, strategy stage)
PHASE_PROFILES: dict[str, tuple[dict[str, float], str]] = {
    "break": ({"speed": 0.40, "stamina": 0.10, "power": 0.50}, "early"),
    "early": ({"speed": 0.45, "stamina": 0.20, "power": 0.35}, "early"),
    "middle": ({"speed": 0.30, "stamina": 0.45, "power": 0.25}, "middle"),
    "late": ({"speed": 0.25, "stamina": 0.55, "power": 0.20}, "late"),
    "stretch": ({"speed": 0.35, "stamina": 0.50, "power": 0.15}, "late"),
}

# Share of a runner's effort spent per stage.
STRATEGY_ENERGY_USAGE: dict[str, dict[str, float]] = {
    "FRONT": {"early": 0.5, "middle": 0.3, "late": 0.2},
    "MID": {"early": 0.3, "middle": 0.4, "late": 0.3},
    "LATE": {"early": 0.2, "middle": 0.3, "late": 0.5},
}
STRATEGY_FIT_SCALE = 0.5

PHASE_NOISE = 0.15
TIME_SPREAD = 0.30
SECONDS_PER_LENGTH = 0.2
MIN_STAMINA_FACTOR = 0.3

# Seconds for a sprint at 1200m; other distances scale linearly.
BASE_TIME_PER_METER = 72.0 / 1200.0

RIVAL_LEVEL_SPREAD = 15
RIVAL_LEVEL_RANGE: tuple[int, int] = (20, 85)
RIVAL_ENERGY_RANGE: tuple[int, int] = (80, 100)
RIVAL_CONSISTENCY_RANGE: tuple[float, float] = (0.7, 1.0)
ROSTER_POWER_OFFSETS: tuple[int, ...] = (-20, -15, -10, -5, 0, 0, 5, 10, 15, 20)

# Race aftermath: (max rank, bond gain, narrative mood)
PLACEMENT_REWARDS: tuple[tuple[int, int, str | None], ...] = (
    (1, 5, "great"),
    (3, 3, "good"),
    (6, 1, None),
)
UNPLACED_ENERGY_LOSS = 5

CAREER_GRADE_WEIGHTS: dict[str, float] = {
    "race_performance": 0.4,
    "placements": 0.2,
    "stat_development": 0.3,
    "bond": 0.1,
}
CAREER_GRADES: tuple[tuple[str, int], ...] = (
    ("S", 95),
    ("A", 85),
    ("B", 75),
    ("C", 65),
    ("D", 50),
    ("F", 0),
)

HORSE_COLORS: tuple[str, ...] = ("bay", "chestnut", "grey", "black", "palomino", "roan")
