import sys
from pathlib import Path

# Put the repository root on sys.path so `agents`, `supplier`, `connectors`
# etc. import without an editable install.
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))
