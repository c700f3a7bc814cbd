from patternrank.tagging import (
    detect_components,
    detect_themes,
    extract_tags,
    literal_prefix,
    path_components,
    scope_path_components,
)


def test_extract_tags_from_task_text():
    assert extract_tags("Fix redis cache timeout in API handler") == {"cache", "api", "error"}
    assert extract_tags("") == frozenset()
    assert extract_tags(None) == frozenset()


def test_detect_themes():
    assert detect_themes("Fix slow cache lookups") == {"bugfix", "performance"}
    assert detect_themes("Restructure the auth token flow") == {"refactor", "security"}


def test_detect_components_from_paths():
    components = detect_components(
        ["src/api/users.ts", "src/services/billing.ts", "./tests/unit/a.test.ts"]
    )
    assert components == {"api", "billing-service", "test-suite"}


def test_path_components():
    assert path_components(["src/api/x.ts"]) == {
        "src/api/x.ts",
        "src/api/",
        "src/",
        "x.ts",
        "*.ts",
    }


def test_literal_prefix():
    assert literal_prefix("src/api/**") == "src/api"
    assert literal_prefix("src/api/*.ts") == "src/api"
    assert literal_prefix("**/*.py") == ""


def test_scope_path_components_use_literal_parts_of_globs():
    assert scope_path_components(["src/api/**"]) == {"src/api/", "src/"}
    assert scope_path_components(["src/api/*.ts"]) == {"src/api/", "src/", "*.ts"}
    assert scope_path_components(["src/config.py"]) == {"src/config.py", "src/", "config.py", "*.py"}
