import os
import sys

# === add src and the repo root to PYTHONPATH ===
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
for path in (BASE_DIR, os.path.join(BASE_DIR, "src")):
    if path not in sys.path:
        sys.path.insert(0, path)
