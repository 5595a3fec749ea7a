"""
Common fixtures for the validator tests.
Provides in-memory models for the reference scenarios and a buffered sink.
"""
import logging
from types import SimpleNamespace

import pytest

from circdep.collaborators import BufferedNotificationSink
from circdep.config import ValidatorConfig
from circdep.memory import InMemoryModel, InMemorySession


# Custom test markers
def pytest_configure(config):
    """Configure custom markers."""
    markers = [
        "slow: marks tests as slow",
        "integration: marks tests that run the full validator",
    ]
    for marker in markers:
        config.addinivalue_line("markers", marker)


@pytest.fixture(autouse=True)
def reset_validator_log_levels():
    """Undo log levels applied by a validator built during the test."""
    yield
    for name in ("GraphExtractor", "CycleWalker", "InvalidPathIndex", "ElementFilter",
                 "ValidationOrchestrator", "CircularDependencyValidator"):
        logging.getLogger(name).setLevel(logging.NOTSET)


@pytest.fixture
def model() -> InMemoryModel:
    return InMemoryModel()


@pytest.fixture
def session() -> InMemorySession:
    return InMemorySession(project="Spacecraft")


@pytest.fixture
def sink() -> BufferedNotificationSink:
    return BufferedNotificationSink()


@pytest.fixture
def inline_config() -> ValidatorConfig:
    """Runs validation on the event loop thread; deterministic for tests."""
    return ValidatorConfig(run_in_thread=False)


@pytest.fixture
def two_block_cycle(model):
    """A -p1-> B -p2-> A"""
    a = model.add_block("A", element_id="A")
    b = model.add_block("B", element_id="B")
    p1 = model.add_part(a, "p1", b, element_id="p1")
    p2 = model.add_part(b, "p2", a, element_id="p2")
    return SimpleNamespace(model=model, a=a, b=b, p1=p1, p2=p2)


@pytest.fixture
def self_reference_branch(model):
    """A -p1-> B (leaf), A -p2-> C, C -p3-> C"""
    a = model.add_block("A", element_id="A")
    b = model.add_block("B", element_id="B")
    c = model.add_block("C", element_id="C")
    p1 = model.add_part(a, "p1", b, element_id="p1")
    p2 = model.add_part(a, "p2", c, element_id="p2")
    p3 = model.add_part(c, "p3", c, element_id="p3")
    return SimpleNamespace(model=model, a=a, b=b, c=c, p1=p1, p2=p2, p3=p3)


@pytest.fixture
def acyclic_tree(model):
    """
    Spacecraft -> Bus -> Battery
               -> Payload -> Camera
                          -> Battery (shared, not a cycle)
    """
    craft = model.add_block("Spacecraft", element_id="craft")
    bus = model.add_block("Bus", element_id="bus")
    battery = model.add_block("Battery", element_id="battery")
    payload = model.add_block("Payload", element_id="payload")
    camera = model.add_block("Camera", element_id="camera")
    model.add_part(craft, "bus", bus, element_id="craft.bus")
    model.add_part(craft, "payload", payload, element_id="craft.payload")
    model.add_part(bus, "battery", battery, element_id="bus.battery")
    model.add_part(payload, "camera", camera, element_id="payload.camera")
    model.add_part(payload, "battery", battery, element_id="payload.battery")
    # A value property typed by a non-block never contributes an edge
    mass = model.add_block("Real", is_block=False, element_id="real")
    model.add_part(craft, "mass", mass, is_part=False, element_id="craft.mass")
    return SimpleNamespace(model=model, craft=craft, bus=bus, battery=battery, payload=payload, camera=camera)
