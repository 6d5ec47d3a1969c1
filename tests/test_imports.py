#!/usr/bin/env python3
"""
Test script to check for syntax and import errors using pytest
"""


def test_imports():
    """Test that all imports work correctly"""
    import approvalflow
    from approvalflow import (
        ApprovalService,
        AuthorizationEngine,
        EngineFacade,
        InstanceNavigator,
        ProcessEngine,
        TaskResolver,
        TaskTransitionController,
        TrailReporter,
    )

    for name in approvalflow.__all__:
        assert getattr(approvalflow, name) is not None

    assert issubclass(ProcessEngine, EngineFacade)
    assert approvalflow.__version__

    # rdflib backs the reference engine
    from rdflib import Graph
    assert Graph is not None


def test_instantiation():
    """Test that classes can be instantiated"""
    from approvalflow import ApprovalService, ProcessEngine

    engine = ProcessEngine()
    service = ApprovalService(engine)

    assert service.resolver is not None
    assert service.authorization is not None
    assert service.transitions is not None
    assert service.navigator is not None
    assert service.trail is not None


def test_errors_are_standard_exceptions():
    """Errors can be caught as their built-in counterparts"""
    from approvalflow import (
        ApprovalFlowError,
        DefinitionError,
        InvalidArgumentError,
        InvalidStateError,
        NotFoundError,
        UnauthorizedError,
    )

    assert issubclass(NotFoundError, LookupError)
    assert issubclass(UnauthorizedError, PermissionError)
    assert issubclass(InvalidArgumentError, ValueError)
    assert issubclass(InvalidStateError, RuntimeError)
    assert issubclass(DefinitionError, ValueError)
    for error in (NotFoundError, UnauthorizedError, InvalidArgumentError, InvalidStateError):
        assert issubclass(error, ApprovalFlowError)

    error = UnauthorizedError("Brus", "4")
    assert str(error) == "User [Brus] is not allowed to act on task [4]"
