"""Main application entry point for the HyperEVM rate monitor service"""

from hyperprobe.service import run

if __name__ == "__main__":
    run()
