#!/usr/bin/env python
"""
Test runner script for running the whole suite against SQLite
Usage: python Doc/run_tests.py [app ...]
"""
import os
import sys

import django
from django.conf import settings
from django.test.utils import get_runner

TEST_LABELS = [
    'buildflow.core',
    'buildflow.agencies',
    'buildflow.records',
    'buildflow.inventory',
    'buildflow.procurement',
    'buildflow.crm',
    'buildflow.reports',
    'buildflow.client',
]

if __name__ == "__main__":
    sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'buildflow.config.settings')
    os.environ.setdefault('DATABASE_ENGINE', 'sqlite')
    django.setup()
    TestRunner = get_runner(settings)
    test_runner = TestRunner()
    labels = [f'buildflow.{app}' for app in sys.argv[1:]] or TEST_LABELS
    failures = test_runner.run_tests(labels)
    sys.exit(bool(failures))
