"""Tests for the regex-driven pattern extractors."""

import pytest

from repograph.patterns import (
    PATTERN_EXTRACTORS,
    PatternExtractor,
    _rx,
    get_pattern_extractor,
    register_pattern_extractor,
)

PYTHON_SOURCE = '''\
from .models import User
from ..core import engine
import os, sys
import pkg.sub as alias


class Service:
    async def run(self):
        pass


def helper():
    pass
'''

GO_SOURCE = '''\
package main

import "fmt"
import (
    "os"
    str "strings"
)

type Server struct {}

func (s *Server) Start() error {
    return nil
}

func main() {
}
'''

C_SOURCE = '''\
#include "util.h"
#include <stdio.h>

static int add(int a, int b) {
    return a + b;
}

int main(void) {
    if (add(1, 2)) {
        return 0;
    }
    return 1;
}
'''


def test_python_imports_and_declarations():
    """Test Python relative imports become path-like specifiers."""
    result = get_pattern_extractor("python").extract_patterns(PYTHON_SOURCE)

    assert result.imports == ["./models", "../core", "os", "sys", "pkg/sub"]
    assert [(f.name, f.kind) for f in result.functions] == [
        ("run", "function"),
        ("helper", "function"),
        ("Service", "class"),
    ]


def test_go_import_block():
    """Test both single and grouped Go imports."""
    result = get_pattern_extractor("go").extract_patterns(GO_SOURCE)

    assert result.imports == ["fmt", "os", "strings"]
    names = {(f.name, f.kind) for f in result.functions}
    assert ("Start", "function") in names
    assert ("main", "function") in names
    assert ("Server", "class") in names


def test_rust_use_and_mod():
    """Test Rust use keeps the crate root and mod is file-relative."""
    source = "use crate::models::User;\nmod utils;\n\npub fn run() {}\n\nstruct Config {\n}\n"
    result = get_pattern_extractor("rust").extract_patterns(source)

    assert result.imports == ["crate", "./utils"]
    assert [(f.name, f.kind) for f in result.functions] == [("run", "function"), ("Config", "class")]


def test_c_includes_and_control_words():
    """Test quoted includes are relative and control keywords are not functions."""
    result = get_pattern_extractor("c").extract_patterns(C_SOURCE)

    assert result.imports == ["./util.h", "stdio.h"]
    assert [f.name for f in result.functions] == ["add", "main"]


def test_component_script_block():
    """Test Vue/Svelte components reuse the ECMAScript import patterns."""
    source = (
        "<script setup>\n"
        "import Child from './Child.vue'\n"
        "import { ref } from 'vue'\n"
        "const onClick = () => {}\n"
        "function setup() {}\n"
        "</script>\n"
    )
    result = get_pattern_extractor("component").extract_patterns(source)

    assert result.imports == ["./Child.vue", "vue"]
    assert [(f.name, f.kind) for f in result.functions] == [("setup", "function"), ("onClick", "arrow")]


def test_extract_builds_file_analysis():
    """Test pattern results become bindings and always-included records."""
    analysis = get_pattern_extractor("python").extract("pkg/service.py", PYTHON_SOURCE)

    assert analysis.path == "pkg/service.py"
    assert analysis.language == "python"
    assert [b.source for b in analysis.imports][:2] == ["./models", "../core"]
    assert all(b.kind == "es" and not b.specifiers for b in analysis.imports)
    assert analysis.calls == []
    assert analysis.size == len(PYTHON_SOURCE)
    assert analysis.preview == PYTHON_SOURCE

    ids = [fn.id for fn in analysis.functions]
    assert ids == ["pkg/service.py::run", "pkg/service.py::helper", "pkg/service.py::Service"]
    assert all(fn.include for fn in analysis.functions)


def test_extract_disambiguates_same_name():
    """Test a class and a function sharing a name get distinct ids."""
    source = "def Foo():\n    pass\n\nclass Foo:\n    pass\n"
    analysis = get_pattern_extractor("python").extract("a.py", source)

    assert [fn.id for fn in analysis.functions] == ["a.py::Foo", "a.py::Foo#2"]


def test_get_unknown_extractor():
    """Test unknown languages raise KeyError."""
    with pytest.raises(KeyError):
        get_pattern_extractor("cobol")


def test_register_custom_extractor():
    """Test a custom language table can be plugged in."""
    extractor = PatternExtractor(
        language="toy",
        imports=[(_rx(r"^use\s+(\S+)"), lambda spec: spec.strip() or None)],
        declarations=[(_rx(r"^proc\s+(?P<name>\w+)"), "function")],
    )
    try:
        register_pattern_extractor(extractor)
        result = get_pattern_extractor("toy").extract_patterns("use ./lib\nproc main\n")
        assert result.imports == ["./lib"]
        assert [f.name for f in result.functions] == ["main"]
    finally:
        PATTERN_EXTRACTORS.pop("toy", None)
