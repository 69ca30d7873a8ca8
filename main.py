#!/usr/bin/env python3
"""
Auto Tax Engine - Entry Point

Vehicle sales/use tax and deal-finance quoting for dealership deals in
all 50 states plus DC. Computes trade-in credit, doc fee and luxury
surcharge treatment, and finance or lease payments with tax included.

Usage:
    python main.py quote --state CA --price 50000 --zip 90001
    python main.py quote --state TX --price 40000 --zip 77001 --apr 6.9 --term 60
    python main.py quote --state NJ --price 42000 --deal-type lease --term 36 \\
        --money-factor 0.00125 --residual 58 --msrp 45000
    python main.py rules --state GA
    python main.py schedule --principal 30000 --apr 6 --term 60
    python main.py batch --file deals.csv --export-json summary.json
"""

from auto_tax_engine.cli import main

if __name__ == "__main__":
    main()
