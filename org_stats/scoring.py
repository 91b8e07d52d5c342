#!/usr/bin/env python3
"""
Project scoring.

A scoring project is a small arithmetic formula evaluated against each
project, for example ``forks_count * 2 + stars_count``. Formulas are parsed
with :mod:`ast` and only numbers, project counters, arithmetic operators and a
handful of math functions are accepted.
"""

import ast
import logging
import math
import operator
from typing import Callable, Dict, List, Union

from .config import DEFAULT_SCORING_PROJECT, split_organizations
from .errors import ValidationError
from .models import Project

MAX_ERROR_MESSAGES = 5

_BINARY_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPERATORS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

_FUNCTIONS = {
    "abs": abs,
    "log": math.log,
    "max": max,
    "min": min,
    "round": round,
    "sqrt": math.sqrt,
}

PROJECT_VARIABLES = (
    "stars_count",
    "forks_count",
    "commits_count",
    "contributors_count",
    "score",
    "languages_count",
    "maintainers_count",
)


def project_variables(project: Project) -> Dict[str, float]:
    """Values a formula can refer to; unset counters count as zero."""
    return {
        "stars_count": float(project.stars_count or 0),
        "forks_count": float(project.forks_count or 0),
        "commits_count": float(project.commits_count or 0),
        "contributors_count": float(project.contributors_count or 0),
        "score": float(project.score or 0),
        "languages_count": float(len(project.language_list)),
        "maintainers_count": float(len(project.maintainers)),
    }


def _check_node(node: ast.AST) -> None:
    if isinstance(node, ast.Expression):
        _check_node(node.body)
    elif isinstance(node, ast.BinOp):
        if type(node.op) not in _BINARY_OPERATORS:
            raise ValidationError(f"Operator {type(node.op).__name__} is not allowed")
        _check_node(node.left)
        _check_node(node.right)
    elif isinstance(node, ast.UnaryOp):
        if type(node.op) not in _UNARY_OPERATORS:
            raise ValidationError(f"Operator {type(node.op).__name__} is not allowed")
        _check_node(node.operand)
    elif isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise ValidationError(f"Constant {node.value!r} is not a number")
    elif isinstance(node, ast.Name):
        if node.id not in PROJECT_VARIABLES:
            raise ValidationError(f"Unknown variable '{node.id}'")
    elif isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name) or node.func.id not in _FUNCTIONS:
            raise ValidationError("Only min, max, abs, round, log and sqrt may be called")
        if node.keywords:
            raise ValidationError("Keyword arguments are not allowed")
        for arg in node.args:
            _check_node(arg)
    else:
        raise ValidationError(f"Unsupported expression: {type(node).__name__}")


def _evaluate(node: ast.AST, variables: Dict[str, float]) -> float:
    if isinstance(node, ast.Expression):
        return _evaluate(node.body, variables)
    if isinstance(node, ast.BinOp):
        return _BINARY_OPERATORS[type(node.op)](
            _evaluate(node.left, variables), _evaluate(node.right, variables)
        )
    if isinstance(node, ast.UnaryOp):
        return _UNARY_OPERATORS[type(node.op)](_evaluate(node.operand, variables))
    if isinstance(node, ast.Constant):
        return float(node.value)
    if isinstance(node, ast.Name):
        return variables[node.id]
    # only checked calls remain
    return _FUNCTIONS[node.func.id](*[_evaluate(arg, variables) for arg in node.args])


class Scorer:
    """
    Computes a project's score.

    Args:
        scoring_project: A formula over project counters, or a callable that
            takes a Project and returns a number.
    """

    def __init__(self, scoring_project: Union[str, Callable[[Project], float], None] = None):
        if scoring_project is None:
            scoring_project = DEFAULT_SCORING_PROJECT

        if callable(scoring_project):
            self.scoring_project = getattr(scoring_project, "__name__", repr(scoring_project))
            self._function = scoring_project
            return

        formula = scoring_project.strip()
        if not formula:
            raise ValidationError("Scoring project must not be empty")
        try:
            tree = ast.parse(formula, mode="eval")
        except SyntaxError as e:
            raise ValidationError(f"Invalid scoring project: {e.msg}") from e
        _check_node(tree)

        self.scoring_project = formula
        self._function = lambda project: _evaluate(tree, project_variables(project))

    def score(self, project: Project) -> int:
        value = self._function(project)
        if isinstance(value, complex):
            raise ValueError(f"score is not a real number: {value}")
        return int(round(value))


def update_scores(store, organizations: str, scorer: Scorer) -> List[str]:
    """
    Re-score the latest projects of every listed organization.

    Args:
        store: Database manager providing find_projects and save_project.
        organizations: Comma separated organization names.
        scorer: The scoring function to apply.

    Returns:
        A one-element summary on success, otherwise the collected error
        messages, truncated once more than MAX_ERROR_MESSAGES were seen.
    """
    logger = logging.getLogger(__name__)
    messages: List[str] = []
    processed_projects = 0

    for organization in split_organizations(organizations):
        for project in store.find_projects(organization):
            if len(messages) > MAX_ERROR_MESSAGES:
                break
            try:
                project.score = scorer.score(project)
                store.save_project(project)
                processed_projects += 1
            except Exception as e:
                if not messages:
                    logger.exception(f"Scoring failed for project {project.name}")
                messages.append(f"project {project.name}: {e}")
        if len(messages) > MAX_ERROR_MESSAGES:
            break

    if len(messages) > MAX_ERROR_MESSAGES:
        messages.append("score update stopped due to errors")
        logger.warning(f"Score update stopped after {len(messages) - 1} errors")
        return messages
    if messages:
        return messages

    logger.info(f"Updated scores of {processed_projects} projects")
    return [f"{processed_projects} project object(s) updated"]
