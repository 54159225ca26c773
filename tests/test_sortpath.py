"""Tests for page ordering."""

import pytest

from comic2epub.sortpath import (
    SORT_ALPHA, SORT_NATURAL, SORT_NATURAL_DIRS, index_paths, sort_paths,
)


def test_natural_sort_numbers_by_value():
    names = ["page2.jpg", "page10.jpg", "page1.jpg"]
    assert sort_paths(names) == ["page1.jpg", "page2.jpg", "page10.jpg"]


def test_alpha_sort_is_lexicographic():
    names = ["page2.jpg", "page10.jpg", "page1.jpg"]
    assert sort_paths(names, SORT_ALPHA) == ["page1.jpg", "page10.jpg", "page2.jpg"]


def test_sort_by_directory_segment():
    names = ["ch10/p1.jpg", "ch2/p10.jpg", "ch2/p5.jpg", "ch1/p99.jpg"]
    assert sort_paths(names) == ["ch1/p99.jpg", "ch2/p5.jpg", "ch2/p10.jpg", "ch10/p1.jpg"]


def test_natural_dirs_alpha_files():
    names = ["ch10/p2.jpg", "ch2/p2.jpg", "ch2/p10.jpg"]
    assert sort_paths(names, SORT_NATURAL_DIRS) == ["ch2/p10.jpg", "ch2/p2.jpg", "ch10/p2.jpg"]


def test_mixed_zero_padding():
    names = ["img_10.png", "img_002.png", "img_1.png", "img_03.png"]
    assert sort_paths(names) == ["img_1.png", "img_002.png", "img_03.png", "img_10.png"]


def test_equal_numbers_have_stable_order():
    assert sort_paths(["1.jpg", "01.jpg"]) == sort_paths(["01.jpg", "1.jpg"])


def test_case_insensitive():
    assert sort_paths(["B.jpg", "a.jpg"]) == ["a.jpg", "B.jpg"]


def test_index_paths_is_bijection():
    names = [f"p{i}.jpg" for i in (5, 3, 11, 0, 7)]
    ordered, index = index_paths(names)
    assert ordered == ["p0.jpg", "p3.jpg", "p5.jpg", "p7.jpg", "p11.jpg"]
    assert sorted(index.values()) == list(range(len(names)))
    assert all(ordered[i] == name for name, i in index.items())


def test_index_paths_empty():
    assert index_paths([]) == ([], {})


def test_unknown_mode():
    with pytest.raises(ValueError):
        sort_paths(["a"], 7)
