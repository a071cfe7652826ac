#!/usr/bin/env python3
"""
Wrapper script to run the aerospike-operator with Kopf.

Launches Kopf's CLI with all standard arguments after the operator module
has registered its handlers.

Usage:
    python run_operator.py [any kopf run arguments]

Examples:
    python run_operator.py --verbose --all-namespaces
    python run_operator.py -n my-namespace --log-format=json
"""

import sys

import kopf.cli

# Registers handlers via decorators
import aerospike_operator.app  # noqa: F401

if __name__ == "__main__":
    # Behave as if the user called: kopf run <args>
    sys.argv.insert(1, "run")
    sys.exit(kopf.cli.main(prog_name="kopf"))
