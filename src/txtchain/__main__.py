"""Run with: python -m txtchain"""

from txtchain.main import main

main()
