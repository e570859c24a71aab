"""
rbmkit Test Suite

This package contains the tests for all rbmkit components.

Test Structure:
- test_models.py: Tests for unit types, sampling, conditionals, Gibbs chains and scoring
- test_training.py: Tests for CD/PCD estimators, the training loop and callbacks
- test_config.py: Tests for experiment configuration loading and validation

Usage:
    # Run all tests
    python tests/run_tests.py

    # Run specific test module
    python tests/run_tests.py --test test_models

    # Run with minimal output
    python tests/run_tests.py --quiet

    # Stop on first failure
    python tests/run_tests.py --failfast
"""

import sys
import warnings
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Suppress warnings during testing
warnings.filterwarnings('ignore', category=UserWarning)
warnings.filterwarnings('ignore', category=FutureWarning)
