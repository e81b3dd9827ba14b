"""Script to watch the purchase register from a project checkout."""

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "src"))

from purchase_watcher.cli import main

if __name__ == "__main__":
    argv = sys.argv[1:]

    # Allow a bare workbook path as the only argument
    if len(argv) == 1 and not argv[0].startswith("-"):
        if not os.path.exists(argv[0]):
            print(f"Excel file not found: {argv[0]}")
            print("Please set $REG_WORKBOOK_PATH or specify a path:")
            print("Example: python run_watcher.py C:\\path\\to\\register.xlsx")
            sys.exit(1)
        argv = ["--workbook", argv[0]]

    sys.exit(main(argv))
