from datetime import datetime, timezone

import pytest

from org_stats.config import DEFAULT_SCORING_PROJECT
from org_stats.errors import ValidationError
from org_stats.models import Project
from org_stats.scoring import MAX_ERROR_MESSAGES, Scorer, update_scores

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def make_project(name, organization_name="acme", **kwargs):
    return Project(name=name, organization_name=organization_name, snapshot_date=NOW, **kwargs)


def test_formula_uses_project_counters():
    scorer = Scorer("forks_count * 2 + stars_count")
    assert scorer.score(make_project("a", forks_count=3, stars_count=4)) == 10


def test_unset_counters_count_as_zero():
    assert Scorer("stars_count + commits_count").score(make_project("a", stars_count=2)) == 2


def test_formula_functions_and_rounding():
    scorer = Scorer("max(stars_count, forks_count) + sqrt(languages_count) + round(-0.4)")
    project = make_project("a", stars_count=3, forks_count=8, language_list=["Go", "C", "Rust", "Java"])
    assert scorer.score(project) == 10
    assert Scorer("stars_count / 3").score(make_project("a", stars_count=2)) == 1


def test_default_formula():
    scorer = Scorer()
    assert scorer.scoring_project == DEFAULT_SCORING_PROJECT
    project = make_project("a", forks_count=1, stars_count=2, contributors_count=1, commits_count=3)
    assert scorer.score(project) == 10


@pytest.mark.parametrize("formula", [
    "",
    "stars_count +",
    "__import__('os').system('true')",
    "stars_count.real",
    "unknown_counter * 2",
    "'text'",
    "stars_count if forks_count else 1",
    "max(stars_count, key=forks_count)",
])
def test_invalid_formulas_are_rejected(formula):
    with pytest.raises(ValidationError):
        Scorer(formula)


def test_runtime_errors_surface_from_score():
    with pytest.raises(ZeroDivisionError):
        Scorer("stars_count / forks_count").score(make_project("a", stars_count=1, forks_count=0))


def test_callable_scorer():
    scorer = Scorer(lambda project: len(project.name))
    assert scorer.score(make_project("abcd")) == 4


class InMemoryProjects:
    def __init__(self, projects):
        self.projects = projects
        self.saved = []

    def find_projects(self, organization_name):
        return [p for p in self.projects if p.organization_name == organization_name]

    def save_project(self, project):
        self.saved.append(project)
        return project


def test_update_scores_reports_count():
    store = InMemoryProjects([
        make_project("a", stars_count=1),
        make_project("b", stars_count=2),
        make_project("c", organization_name="globex", stars_count=3),
        make_project("d", organization_name="initech", stars_count=4),
    ])

    messages = update_scores(store, " acme , globex ", Scorer("stars_count * 10"))

    assert messages == ["3 project object(s) updated"]
    assert [(p.name, p.score) for p in store.saved] == [("a", 10), ("b", 20), ("c", 30)]


def test_update_scores_collects_errors():
    store = InMemoryProjects([
        make_project("fine", stars_count=1, forks_count=1),
        make_project("broken", stars_count=1, forks_count=0),
    ])

    messages = update_scores(store, "acme", Scorer("stars_count / forks_count"))

    assert messages == ["project broken: float division by zero"]
    assert [p.name for p in store.saved] == ["fine"]


def test_update_scores_stops_after_too_many_errors():
    store = InMemoryProjects([make_project(f"p{i}") for i in range(20)])

    def failing(project):
        raise RuntimeError("boom")

    messages = update_scores(store, "acme", Scorer(failing))

    assert len(messages) == MAX_ERROR_MESSAGES + 2
    assert messages[0] == "project p0: boom"
    assert messages[-1] == "score update stopped due to errors"
    assert store.saved == []


def test_update_scores_without_projects():
    assert update_scores(InMemoryProjects([]), "acme", Scorer()) == ["0 project object(s) updated"]
