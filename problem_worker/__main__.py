from __future__ import annotations

import sys

from problem_worker.main import main

sys.exit(main())
