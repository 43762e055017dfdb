#!/usr/bin/env python3
"""
Benchmark: numpy vs GPU for element-wise add and sqrt.

Times each variant on N = 1,000,000 elements and checks that all variants
agree. The GPU variants include host->device upload and read-back, filling
the host buffer either in bulk or one element at a time.

Usage:
    python -m wgpu_array.examples.bench_add
    # or
    python wgpu_array/examples/bench_add.py
"""

import sys
import os
import time
import numpy as np

# Allow running from repo root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from wgpu_array import get_backend

N = 1_000_000


def bench(title, cases):
    """Run (name, fn) cases, print elapsed times, check results agree."""
    print(f"=== {title} ===")
    reference = None
    for name, fn in cases:
        t0 = time.perf_counter()
        result = fn()
        t1 = time.perf_counter()
        print(f"  {name:<24s} {(t1 - t0) * 1000:9.2f} ms")
        if reference is None:
            reference = result
        elif not np.allclose(result, reference, rtol=1e-5):
            print(f"  [FAIL] {name} disagrees with {cases[0][0]}")
    print()


def main():
    gpu = get_backend()
    print(f"Backend: {gpu!r}\n")

    a = np.arange(N, dtype=np.float32)
    b = np.arange(N, dtype=np.float32) * 2 + 3

    def gpu_add_bulk():
        A = gpu.array(N)
        A.set(a)
        B = gpu.array(N)
        B.set(b)
        return gpu.add(A, B).numpy()

    def gpu_add_one_by_one():
        A = gpu.array(N)
        B = gpu.array(N)
        for i in range(N):
            A.set(a[i], i)
            B.set(b[i], i)
        return gpu.add(A, B).numpy()

    bench(f"Add: N = {N}", [
        ("numpy", lambda: a + b),
        ("gpu (set bulk)", gpu_add_bulk),
        ("gpu (set one by one)", gpu_add_one_by_one),
    ])

    def gpu_sqrt_bulk():
        A = gpu.array(N)
        A.set(a)
        return gpu.sqrt(A).numpy()

    bench(f"sqrt: N = {N}", [
        ("numpy", lambda: np.sqrt(a)),
        ("gpu (set bulk)", gpu_sqrt_bulk),
    ])


if __name__ == "__main__":
    main()
