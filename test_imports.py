#!/usr/bin/env python3
"""Test that all imports work."""

import importlib
import sys
import traceback

import pytest

MODULES = [
    "signals",
    "similarity",
    "embeddings",
    "principle_store",
    "convergence",
    "compressor",
    "guardrails",
    "provenance",
    "notation",
    "metrics",
    "synthesis_config",
    "synthesis",
]


def try_import(module_name):
    try:
        importlib.import_module(module_name)
        print(f"✓ {module_name}")
        return True
    except Exception as e:
        print(f"✗ {module_name}: {e}")
        traceback.print_exc()
        return False


@pytest.mark.parametrize("module_name", MODULES)
def test_import(module_name):
    assert try_import(module_name)


if __name__ == "__main__":
    results = [try_import(m) for m in MODULES]

    print(f"\n{sum(results)}/{len(results)} modules imported successfully")
    sys.exit(0 if all(results) else 1)
