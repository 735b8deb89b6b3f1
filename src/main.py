#!/usr/bin/env python3
"""
DomainTags bridge: tag game sessions by the hostname they connected with.
"""

from app import main


if __name__ == "__main__":
    main()
