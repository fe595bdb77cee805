"""Tests for path template compilation and path normalization."""

import pytest

from portcullis.errors import ConfigurationError
from portcullis.routing.pattern import compile_template, normalize_path


class TestNormalizePath:
    def test_empty_is_root(self) -> None:
        assert normalize_path("") == "/"

    def test_root_unchanged(self) -> None:
        assert normalize_path("/") == "/"

    def test_strips_one_trailing_slash(self) -> None:
        assert normalize_path("/users/") == "/users"

    def test_adds_leading_slash(self) -> None:
        assert normalize_path("users") == "/users"


class TestCompileTemplate:
    def test_static(self) -> None:
        pattern = compile_template("/about")
        assert pattern.param_names == ()
        assert pattern.match("/about") == ()
        assert pattern.match("/about/team") is None

    def test_single_param(self) -> None:
        pattern = compile_template("/users/{id}")
        assert pattern.param_names == ("id",)
        assert pattern.match("/users/42") == ("42",)

    def test_params_in_template_order(self) -> None:
        pattern = compile_template("/posts/{slug}/comments/{cid}")
        assert pattern.param_names == ("slug", "cid")
        assert pattern.match("/posts/hello/comments/7") == ("hello", "7")

    def test_param_does_not_cross_slash(self) -> None:
        pattern = compile_template("/users/{id}")
        assert pattern.match("/users/1/2") is None

    def test_param_requires_a_character(self) -> None:
        assert compile_template("/users/{id}").match("/users/") is None

    def test_anchored_to_whole_path(self) -> None:
        pattern = compile_template("/users")
        assert pattern.match("/api/users") is None
        assert pattern.match("/users2") is None

    def test_literal_metacharacters_escaped(self) -> None:
        pattern = compile_template("/files/v1.0/{name}")
        assert pattern.match("/files/v1.0/report") == ("report",)
        assert pattern.match("/files/v1x0/report") is None

    def test_plus_and_parens_are_literal(self) -> None:
        pattern = compile_template("/a+b/(x)")
        assert pattern.match("/a+b/(x)") == ()
        assert pattern.match("/aab/x") is None

    def test_empty_template_matches_root(self) -> None:
        assert compile_template("").match("/") == ()

    def test_duplicate_names_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="Duplicate"):
            compile_template("/{id}/x/{id}")

    def test_angle_bracket_syntax_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="<param>"):
            compile_template("/users/<id>")

    def test_empty_placeholder_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="Invalid placeholder"):
            compile_template("/users/{}")

    def test_unbalanced_brace_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="Unbalanced"):
            compile_template("/users/{id")
