import sys

from mermaid_service.cli import main

sys.exit(main())
