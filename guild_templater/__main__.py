#!/usr/bin/env python3
"""
Main execution module for the Discord guild template executor
"""

from guild_templater.cli.commands import main

if __name__ == "__main__":
    main()
