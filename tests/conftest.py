# Ensure src is at sys.path[0] when pytest runs from the repo root or the tests dir
import sys
from pathlib import Path

_tests_dir = Path(__file__).resolve().parent
_src = _tests_dir.parent / "src"
_str_src = str(_src)
if _str_src not in sys.path:
    sys.path.insert(0, _str_src)
if str(_tests_dir) not in sys.path:
    sys.path.insert(0, str(_tests_dir))
