"""kbingest - turn uploaded documents into reviewable knowledge-base entries"""

__version__ = "0.1.0"
