#!/usr/bin/env python3
"""
MPD Relay - rewrites the BaseURL of DASH manifests to go through a proxy

This is the entry point for the relay server.
The actual implementation is in the mpdrelay/ package:
  - mpdrelay/config.py    - Configuration and constants
  - mpdrelay/server.py    - HTTP server and CLI
  - mpdrelay/relay.py     - Fetch, rewrite and header handling
  - mpdrelay/manifest.py  - BaseURL lookup and rewrite
  - mpdrelay/upstream.py  - Pooled outbound fetch
  - mpdrelay/templates/   - Landing page
"""

import sys
import os

# Add the package directory to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from mpdrelay.server import main

if __name__ == "__main__":
    main()
