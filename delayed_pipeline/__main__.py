#!/usr/bin/env python
import sys
from delayed_pipeline.cli import main

if __name__ == '__main__':
    sys.exit(main())
