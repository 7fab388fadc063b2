import argparse
import platform
import sys

from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from chrnb2_analysis.config import BEHAVIOR_WORKBOOK, LOGS_DIR  # noqa: E402
from chrnb2_analysis.data.datasets import get_available_datasets, get_dataset_config  # noqa: E402
from chrnb2_analysis.utils.logging import package_versions, write_json  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser(description="Record interpreter, package versions and raw input availability.")
    parser.add_argument("--out-json", type=Path, default=LOGS_DIR / "environment_check.json")
    args = parser.parse_args()

    datasets = {}
    for name in get_available_datasets():
        config = get_dataset_config(name)
        datasets[name] = {str(p): p.exists() for p in config.input_paths()}

    info = {
        "python_version": sys.version,
        "platform": platform.platform(),
        "packages": package_versions(),
        "datasets": datasets,
        "behavior_workbook": {str(BEHAVIOR_WORKBOOK): BEHAVIOR_WORKBOOK.exists()},
    }
    write_json(args.out_json, info)
    print(f"Wrote {args.out_json}")


if __name__ == "__main__":
    main()
