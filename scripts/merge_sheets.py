#!/usr/bin/env python
"""
Merge exported annotation sheets into one label table.

Rows are matched by position; timing and crop columns are dropped.

Usage:
    python scripts/merge_sheets.py <sheet> [<sheet> ...] [-o merged.xlsx]
"""

import sys
import argparse
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.errors import SheetError
from core.sheets import merge_sheets, read_sheet, write_sheet


def main():
    parser = argparse.ArgumentParser(description="Merge exported annotation sheets")
    parser.add_argument("sheets", nargs="+", help="Sheets to merge (.csv or .xlsx), in order")
    parser.add_argument("-o", "--output", default="merged.xlsx", help="Output file (.xlsx or .csv)")

    args = parser.parse_args()

    try:
        frames = [read_sheet(path) for path in args.sheets]
        merged = merge_sheets(frames)
        write_sheet(merged, args.output)
    except (SheetError, OSError) as e:
        print(f"✗ {e}")
        sys.exit(1)

    print(f"✓ Merged {len(frames)} sheets: {len(merged)} rows, {len(merged.columns)} columns")
    print(f"  Columns: {', '.join(merged.columns)}")
    print(f"  Saved to {args.output}")


if __name__ == "__main__":
    main()
