"""Internal constants shared across the library."""

# ------------------------------------------------------------------
# Load-cell scale  (sensor units -> kg)
# ------------------------------------------------------------------

SCALE_FACTOR = 1_000_000
NORMALIZED_MAX = 1023
SENSOR_TYPE = "HX711"

# ------------------------------------------------------------------
# Calibration bounds (kg)
# ------------------------------------------------------------------

MAX_FORCE_LIMIT = 50.0
DEAD_ZONE_LIMIT = 10.0
DEFAULT_MAX_FORCE = 5.0
DEFAULT_DEAD_ZONE = 1.0
TEST_FORCE_LIMIT = 50.0

# ------------------------------------------------------------------
# Serial link
# ------------------------------------------------------------------

DEFAULT_BAUD_RATE = 9600
DEFAULT_RECONNECT_DELAY = 3.0
DEFAULT_MAX_RECONNECT_ATTEMPTS = 5

# USB vendor IDs seen on Arduino boards and common USB-serial bridges.
TARGET_VENDOR_IDS: frozenset[str] = frozenset({"2341", "1a86"})
TARGET_MANUFACTURER_HINTS: tuple[str, ...] = ("arduino", "ch340", "ftdi", "silicon")
TARGET_PATH_HINTS: tuple[str, ...] = ("ttyUSB", "ttyACM", "COM")

# ------------------------------------------------------------------
# Cadences (seconds)
# ------------------------------------------------------------------

DEFAULT_SIMULATION_INTERVAL = 0.1
DEFAULT_STREAM_INTERVAL = 0.05

# Synthetic waveform, in raw sensor units. Sweeps roughly 1..6 kg so the
# default 1 kg dead zone and 5 kg max force are both exercised.
SIMULATION_BASELINE = 3_500_000.0
SIMULATION_AMPLITUDE = 2_500_000.0
SIMULATION_PERIOD = 6.0
SIMULATION_NOISE = 100_000.0
