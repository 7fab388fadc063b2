from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]

DATA_DIR = PROJECT_ROOT / "data"
RAW_DIR = DATA_DIR / "raw"
PROCESSED_DIR = DATA_DIR / "processed"

OUTPUTS_DIR = PROJECT_ROOT / "outputs"
FIGURES_DIR = OUTPUTS_DIR / "figures"
TABLES_DIR = OUTPUTS_DIR / "tables"
LOGS_DIR = OUTPUTS_DIR / "logs"
CACHE_DIR = OUTPUTS_DIR / "fit_cache"

BEHAVIOR_WORKBOOK = RAW_DIR / "chrnb2_ko_behavior.xlsx"

# Analysis identifiers (written into run logs)
ANALYSIS_VERSION = "chrnb2_striatum_v1"

GENE = "Chrnb2"

# Single-cell expression model
#
# Counts for GENE are modeled per cell with a negative binomial likelihood and
# a log(total UMI) offset; group coefficients are rate ratios vs the reference.
EXPRESSION_DATASET_DEFAULT = "gokce2016"
EXPRESSION_REFERENCE_GROUP = "D1 SPN"
EXPRESSION_MIN_GROUP_CELLS = 20
EXPRESSION_MIN_GROUP_DETECTED = 3
# Reported group rates are UMI per this many total UMI.
EXPRESSION_RATE_SCALE = 10_000
COUNTS_CHUNKSIZE = 2_000

# Behavioral models
GENOTYPE_REFERENCE = "WT"
GENOTYPE_LEVELS = ["WT", "KO"]
BEHAVIOR_MIN_GROUP_ANIMALS = 3

# Shared inference settings
ALPHA = 0.05
N_BOOT = 2000
RANDOM_SEED = 2026

FIGURE_FORMAT = "svg"
