"""Unit tests for progress template loading and initial milestones."""

from __future__ import annotations

from uuid import uuid4

import pytest

from takeoff.models import ComponentType
from takeoff.pipeline.templates import (
    LINEAR_FOOTAGE_MILESTONES,
    TemplateRef,
    initial_milestones,
    load_template_specs,
)


class TestLoadTemplateSpecs:
    """Test the YAML seed file."""

    def test_default_file_covers_every_type(self):
        specs = load_template_specs()
        assert {s.component_type for s in specs} == {t.value for t in ComponentType}

    def test_pipe_workflow_is_hybrid(self):
        specs = {s.component_type: s for s in load_template_specs()}
        pipe = specs["pipe"]

        assert pipe.workflow_type == "hybrid"
        partial = [m["name"] for m in pipe.milestones if m["is_partial"]]
        assert partial == ["Fabricate", "Install", "Erect", "Connect", "Support"]

    def test_weights_sum_to_100(self):
        for spec in load_template_specs():
            assert sum(m["weight"] for m in spec.milestones) == 100, spec.component_type

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_template_specs(tmp_path / "nope.yaml")

    def test_missing_section(self, tmp_path):
        path = tmp_path / "templates.yaml"
        path.write_text("other: []\n")
        with pytest.raises(ValueError, match="templates"):
            load_template_specs(path)

    def test_unknown_component_type(self, tmp_path):
        path = tmp_path / "templates.yaml"
        path.write_text("templates:\n  - component_type: gasket\n")
        with pytest.raises(ValueError, match="gasket"):
            load_template_specs(path)


class TestInitialMilestones:
    """Test untouched milestone maps."""

    def test_discrete_template(self):
        template = TemplateRef(
            id=uuid4(),
            milestones_config=[
                {"name": "Receive", "weight": 10, "is_partial": False},
                {"name": "Install", "weight": 90, "is_partial": False},
            ],
        )
        assert initial_milestones(ComponentType.VALVE, template) == {"Receive": False, "Install": False}

    def test_partial_milestones_on_aggregates_get_lf_suffix(self):
        template = TemplateRef(
            id=uuid4(),
            milestones_config=[
                {"name": "Install", "weight": 80, "is_partial": True},
                {"name": "Test", "weight": 20, "is_partial": False},
            ],
        )
        assert initial_milestones(ComponentType.PIPE, template) == {"Install_LF": 0, "Test": False}
        assert initial_milestones(ComponentType.TUBING, template) == {"Install": 0, "Test": False}

    def test_without_template(self):
        assert initial_milestones(ComponentType.VALVE, None) == {}
        assert initial_milestones(ComponentType.THREADED_PIPE, None) == LINEAR_FOOTAGE_MILESTONES
