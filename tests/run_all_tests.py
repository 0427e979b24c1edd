#!/usr/bin/env python3
"""
Test runner for the Theme Quiz Bot.
Runs all unit and integration tests and prints a summary report.
"""
import unittest
import sys
import time
from pathlib import Path

# Project root holds the themequiz package
sys.path.insert(0, str(Path(__file__).parent.parent))

TEST_MODULES = [
    'tests.test_answer_matcher',
    'tests.test_score_ledger',
    'tests.test_storage',
    'tests.test_leveling',
    'tests.test_round_collector',
    'tests.test_theme_selector',
    'tests.test_theme_catalog',
    'tests.test_theme_source',
    'tests.test_hints',
    'tests.test_config_manager',
    'tests.test_game_session',
    'tests.test_game_controller',
    'tests.test_bot_discord_integration',
    'tests.test_integration_comprehensive',
]

CATEGORIES = {
    'unit': TEST_MODULES[:10],
    'session': ['tests.test_game_session', 'tests.test_round_collector'],
    'controller': ['tests.test_game_controller'],
    'bot': ['tests.test_bot_discord_integration'],
    'integration': ['tests.test_integration_comprehensive'],
    'scoring': ['tests.test_score_ledger', 'tests.test_leveling'],
    'themes': ['tests.test_theme_catalog', 'tests.test_theme_selector', 'tests.test_theme_source'],
    'config': ['tests.test_config_manager'],
}


def load_suite(module_names):
    loader = unittest.TestLoader()
    suite = unittest.TestSuite()

    for module_name in module_names:
        try:
            suite.addTest(loader.loadTestsFromName(module_name))
            print(f"✓ Loaded tests from {module_name}")
        except Exception as e:
            print(f"✗ Failed to load {module_name}: {e}")

    return suite


def run_test_suite():
    """Run the complete test suite and generate report."""
    print("=" * 70)
    print("Theme Quiz Bot - Test Suite")
    print("=" * 70)

    suite = load_suite(TEST_MODULES)

    print("\n" + "=" * 70)
    print("Running Tests...")
    print("=" * 70)

    runner = unittest.TextTestRunner(
        verbosity=2,
        stream=sys.stdout,
        buffer=True
    )

    start_time = time.time()
    result = runner.run(suite)
    end_time = time.time()

    print("\n" + "=" * 70)
    print("Test Summary Report")
    print("=" * 70)

    total_tests = result.testsRun
    failures = len(result.failures)
    errors = len(result.errors)
    skipped = len(result.skipped)
    passed = total_tests - failures - errors - skipped

    print(f"Total Tests Run: {total_tests}")
    print(f"Passed: {passed}")
    print(f"Failed: {failures}")
    print(f"Errors: {errors}")
    print(f"Skipped: {skipped}")
    print(f"Success Rate: {(passed/total_tests)*100:.1f}%" if total_tests > 0 else "N/A")
    print(f"Execution Time: {end_time - start_time:.2f} seconds")

    if failures:
        print("\n" + "-" * 50)
        print("FAILURES:")
        print("-" * 50)
        for test, traceback in result.failures:
            print(f"\n{test}:")
            print(traceback)

    if errors:
        print("\n" + "-" * 50)
        print("ERRORS:")
        print("-" * 50)
        for test, traceback in result.errors:
            print(f"\n{test}:")
            print(traceback)

    print("\n" + "=" * 70)
    print("Test Categories Covered:")
    print("=" * 70)
    print("✓ Unit Tests")
    print("  - Answer matching, scoring and leveling")
    print("  - Storage revisions and JSON persistence")
    print("  - Theme catalog, selection and metadata lookups")
    print("\n✓ Session Tests")
    print("  - Round lifecycle, forced stops and cleanup")
    print("\n✓ Integration Tests")
    print("  - Complete matches through the controller")
    print("  - Restart recovery of leftover sessions")
    print("\n✓ Mock Tests")
    print("  - Slash command handlers and Discord API errors")
    print("\n" + "=" * 70)

    return failures == 0 and errors == 0


def run_specific_test_category(category):
    """Run tests for a specific category."""
    if category not in CATEGORIES:
        print(f"Unknown category: {category}")
        print(f"Available categories: {', '.join(CATEGORIES.keys())}")
        return False

    print(f"Running {category} tests...")

    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(load_suite(CATEGORIES[category]))

    return len(result.failures) == 0 and len(result.errors) == 0


if __name__ == '__main__':
    if len(sys.argv) > 1:
        success = run_specific_test_category(sys.argv[1])
    else:
        success = run_test_suite()

    sys.exit(0 if success else 1)
