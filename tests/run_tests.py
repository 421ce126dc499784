#!/usr/bin/env python3
import unittest
import os
import sys

# Add project root to path so `schedule_engine` imports without installing
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

if __name__ == '__main__':
    # Optional first argument narrows discovery, e.g. `run_tests.py test_retrieval*`
    pattern = sys.argv[1] if len(sys.argv) > 1 else 'test_*.py'
    test_suite = unittest.defaultTestLoader.discover(
        start_dir=os.path.dirname(__file__),
        pattern=pattern,
    )

    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(test_suite)

    sys.exit(not result.wasSuccessful())
