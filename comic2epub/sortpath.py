"""
Page ordering.

Names are compared directory segment by directory segment. In natural mode
digit runs inside a segment compare by value, so "page2" sorts before "page10".
"""
from natsort import natsort_keygen, ns

SORT_ALPHA = 0 # lexicographic on every segment
SORT_NATURAL_DIRS = 1 # natural on directories, lexicographic on the file name
SORT_NATURAL = 2 # natural on every segment

SORT_MODES = (SORT_ALPHA, SORT_NATURAL_DIRS, SORT_NATURAL)

_natural_key = natsort_keygen(alg=ns.IGNORECASE)

def _alpha_key(segment):
    return (segment.lower(),)

def split_path(name):
    return [s for s in name.replace('\\', '/').split('/') if s not in ('', '.')]

def sort_key(name, mode=SORT_NATURAL):
    segments = split_path(name)
    keys = []
    for i, segment in enumerate(segments):
        is_file = i == len(segments) - 1
        if mode == SORT_NATURAL or (mode == SORT_NATURAL_DIRS and not is_file):
            keys.append(_natural_key(segment))
        else:
            keys.append(_alpha_key(segment))
    # raw name last: "01.jpg" and "1.jpg" still get a fixed order
    return (tuple(keys), name)

def sort_paths(names, mode=SORT_NATURAL):
    if mode not in SORT_MODES:
        raise ValueError(f"unknown sort path mode: {mode}")
    return sorted(names, key=lambda n: sort_key(n, mode))

def index_paths(names, mode=SORT_NATURAL):
    """
    Order names and map each one to its sequence index.

    Returns:
        tuple: (ordered names, {name: index}) with indexes 0..len(names)-1.
    """
    ordered = sort_paths(names, mode)
    return ordered, {name: i for i, name in enumerate(ordered)}
