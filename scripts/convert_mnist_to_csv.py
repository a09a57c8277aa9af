#!/usr/bin/env python3
"""
Convert the MNIST NPZ archive to the CSV record format used by venturi.

Each output line is ``label,pixel1,...,pixel784`` with integer pixels in
0-255, which is what ``venturi train`` and ``venturi query`` read.

Usage:
    python scripts/convert_mnist_to_csv.py

The script will:
1. Load data/mnist.npz (images as floats in [0, 1])
2. Write data/mnist_train.csv and data/mnist_test.csv
3. Verify the line counts of the written files
"""

import os
import sys
from typing import Iterable, Tuple

import numpy as np


def load_npz(filepath: str) -> Tuple[Tuple[np.ndarray, np.ndarray], ...]:
    """
    Load MNIST arrays from an NPZ archive.

    Parameters:
    -----------
    filepath : str
        Path to the mnist.npz file

    Returns:
    --------
    tuple
        ((train_images, train_labels), (test_images, test_labels))
    """
    print(f"📂 Loading MNIST data from: {filepath}")

    with np.load(filepath) as data:
        train = (data['train_images'], data['train_labels'])
        test = (data['test_images'], data['test_labels'])

    print(f"✅ Loaded {len(train[0])} training and {len(test[0])} test images")
    return train, test


def to_records(images: np.ndarray, labels: np.ndarray) -> Iterable[str]:
    """
    Yield one CSV record per image.

    Parameters:
    -----------
    images : np.ndarray
        (n, 784) array of pixel intensities in [0, 1]
    labels : np.ndarray
        (n,) array of digit labels
    """
    pixels = np.clip(np.rint(np.asarray(images) * 255), 0, 255).astype(np.uint8)
    for row, label in zip(pixels.reshape(len(pixels), -1), labels):
        yield ','.join([str(int(label))] + [str(int(p)) for p in row])


def write_csv(images: np.ndarray, labels: np.ndarray, filepath: str) -> int:
    """
    Write images and labels as CSV records.

    Returns:
    --------
    int
        Number of records written
    """
    print(f"\n💾 Writing CSV records: {filepath}")

    count = 0
    with open(filepath, 'w') as f:
        for record in to_records(images, labels):
            f.write(record + '\n')
            count += 1

    print(f"✅ Wrote {count} records")
    return count


def verify_csv(filepath: str, expected: int) -> bool:
    """Check that the CSV file holds the expected number of records."""
    with open(filepath) as f:
        actual = sum(1 for line in f if line.strip())
    assert actual == expected, f"Expected {expected} records, found {actual}"
    return True


def main():
    """Main conversion function."""
    print("=" * 60)
    print("MNIST Data Format Converter")
    print("NPZ → CSV records")
    print("=" * 60)

    script_dir = os.path.dirname(os.path.abspath(__file__))
    project_root = os.path.dirname(script_dir)
    data_dir = os.path.join(project_root, 'data')

    npz_path = os.path.join(data_dir, 'mnist.npz')
    train_path = os.path.join(data_dir, 'mnist_train.csv')
    test_path = os.path.join(data_dir, 'mnist_test.csv')

    if not os.path.exists(npz_path):
        print(f"❌ Error: NPZ file not found: {npz_path}")
        sys.exit(1)

    try:
        train, test = load_npz(npz_path)

        train_count = write_csv(*train, train_path)
        test_count = write_csv(*test, test_path)

        verify_csv(train_path, train_count)
        verify_csv(test_path, test_count)

        print("\n" + "=" * 60)
        print("✅ CONVERSION COMPLETE!")
        print("=" * 60)
        print(f"\n📝 Next steps:")
        print(f"   venturi train -t {train_path} -o network.bin")
        print(f"   venturi query -n network.bin -i {test_path}")

    except (OSError, KeyError, AssertionError) as e:
        print(f"\n❌ Error during conversion: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
