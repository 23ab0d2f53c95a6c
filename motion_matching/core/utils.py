"""
Shared file and serialization helpers.
"""

import csv
import os

import numpy as np


def ensure_output_dir(filepath):
    """
    Ensure the parent directory of an output file exists.

    Args:
        filepath (str): Full path to output file.
    """
    directory = os.path.dirname(os.fspath(filepath))
    if directory:
        os.makedirs(directory, exist_ok=True)


def prepare_output_file(filepath):
    """
    Create the output directory and remove a stale file.

    Raises:
        RuntimeError: If the existing file cannot be removed (locked or read-only).
    """
    ensure_output_dir(filepath)
    if os.path.exists(filepath):
        try:
            os.remove(filepath)
        except PermissionError as e:
            raise RuntimeError(f"Cannot overwrite {filepath} - file may be open in another program.") from e


def convert_numpy_to_native(obj):
    """
    Recursively convert NumPy types to native Python types for JSON serialization.
    """
    if isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, np.floating):
        return float(obj)
    elif isinstance(obj, np.bool_):
        return bool(obj)
    elif isinstance(obj, np.ndarray):
        return obj.tolist()
    elif isinstance(obj, dict):
        return {key: convert_numpy_to_native(value) for key, value in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [convert_numpy_to_native(item) for item in obj]
    return obj


def write_dict_list_to_csv(rows, filepath, fieldnames=None):
    """
    Write a list of dictionaries as CSV.

    An empty list still produces a file when fieldnames are given.

    Args:
        rows: List of dictionaries
        filepath: Output CSV path
        fieldnames: Column order (defaults to keys of the first row)
    """
    if not rows and fieldnames is None:
        return

    if fieldnames is None:
        fieldnames = list(rows[0].keys())

    prepare_output_file(filepath)
    with open(filepath, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(convert_numpy_to_native(row) for row in rows)
