#!/usr/bin/env python3
"""
Installer Structure Tests
=========================

Checks the static data the provisioner is driven by: the install step
registry, the CUDA compatibility table and the checkpoint list. Behavioral
tests live in test_installer_comprehensive.py and test_provisioner.py.
"""

import pytest


class TestRegistry:
    """Test the install step registry."""

    def test_registry_imports(self):
        """Test that the registry can be imported."""
        from slam_setup.installer.core.registry import (
            INSTALL_STEPS,
            InstallStep,
            StepKind,
            get_steps_in_install_order,
            validate_registry,
        )

        assert len(INSTALL_STEPS) == 8
        assert all(isinstance(step, InstallStep) for step in INSTALL_STEPS)

    def test_registry_validation_passes(self):
        from slam_setup.installer.core.registry import validate_registry

        validate_registry()

    def test_install_order(self):
        """Steps run in the order the build depends on."""
        from slam_setup.installer.core.registry import get_steps_in_install_order

        names = [step.name for step in get_steps_in_install_order()]
        assert names == [
            "pytorch",
            "submodules",
            "mast3r",
            "imgui",
            "in3d",
            "in3d-deps",
            "mast3r-slam",
            "torchcodec",
        ]

    def test_imgui_before_in3d_without_deps(self):
        """The prebuilt imgui wheel must be in place before in3d is installed with --no-deps."""
        from slam_setup.installer.core.registry import get_step_by_name

        imgui = get_step_by_name("imgui")
        in3d = get_step_by_name("in3d")
        assert imgui.order < in3d.order
        assert "imgui[glfw]" in imgui.args
        assert "--no-deps" in in3d.args

    def test_only_torchcodec_is_optional(self):
        from slam_setup.installer.core.registry import get_optional_steps

        optional = get_optional_steps()
        assert [step.name for step in optional] == ["torchcodec"]
        assert "torchcodec==0.1" in optional[0].args

    def test_build_env_steps(self):
        """Only the two CUDA extension builds get the build variables."""
        from slam_setup.installer.core.registry import INSTALL_STEPS

        needs_build = {step.name for step in INSTALL_STEPS if step.needs_build_env}
        assert needs_build == {"mast3r", "mast3r-slam"}

        for step in INSTALL_STEPS:
            if step.needs_build_env:
                assert "--no-build-isolation" in step.args

    def test_render_args_substitutes_cuda(self):
        from slam_setup.installer.core.registry import get_step_by_name

        args = get_step_by_name("pytorch").render_args("11.8")
        assert "pytorch-cuda=11.8" in args
        assert "cuda-nvcc=11.8" in args
        assert "cuda-cudart-dev=11.8" in args
        assert "pytorch==2.5.1" in args
        assert "torchvision==0.20.1" in args
        assert "torchaudio==2.5.1" in args
        assert not any("{cuda}" in arg for arg in args)

    def test_pytorch_channels(self):
        from slam_setup.installer.core.registry import get_step_by_name

        args = get_step_by_name("pytorch").args
        assert args[args.index("-c") + 1] == "pytorch"
        assert "nvidia" in args
        assert args[-1] == "-y"

    def test_get_step_by_name_unknown(self):
        from slam_setup.installer.core.registry import get_step_by_name

        assert get_step_by_name("nonexistent") is None

    def test_all_step_names(self):
        from slam_setup.installer.core.registry import get_all_step_names

        assert "submodules" in get_all_step_names()
        assert len(get_all_step_names()) == 8

    def test_validation_rejects_second_optional_step(self, monkeypatch):
        from slam_setup.installer.core import registry
        from slam_setup.installer.core.registry import InstallStep, StepKind

        extra = InstallStep(
            name="extra", kind=StepKind.PIP, args=["install", "extra"],
            order=95, required=False,
        )
        monkeypatch.setattr(registry, "INSTALL_STEPS", registry.INSTALL_STEPS + [extra])

        with pytest.raises(ValueError, match="exactly one optional step"):
            registry.validate_registry()


class TestConfig:
    """Test centralized constants."""

    def test_config_validation_passes(self):
        from slam_setup.installer.core.config import validate_config

        validate_config()

    def test_environment_constants(self):
        from slam_setup.installer.core.config import ENV_NAME, ENV_PYTHON_VERSION

        assert ENV_NAME == "mast3r-slam"
        assert ENV_PYTHON_VERSION == "3.11"

    def test_compat_table_order(self):
        """Specific entries come before the 12.* catch-all."""
        from slam_setup.installer.core.config import CUDA_COMPAT_TABLE

        patterns = [entry.pattern for entry in CUDA_COMPAT_TABLE]
        assert patterns == ["11.8*", "12.1*", "12.4*", "12.*"]
        assert CUDA_COMPAT_TABLE[-1].pytorch_cuda == "12.1"

    def test_defaults(self):
        from slam_setup.installer.core.config import (
            DEFAULT_CUDA_VERSION,
            DEFAULT_PYTORCH_CUDA,
        )

        assert DEFAULT_CUDA_VERSION == "12.1"
        assert DEFAULT_PYTORCH_CUDA == "12.1"

    def test_checkpoints(self):
        from slam_setup.installer.core.config import CHECKPOINT_BASE_URL, CHECKPOINTS

        assert CHECKPOINT_BASE_URL.startswith("https://")
        assert len(CHECKPOINTS) == 3
        assert all(name.endswith(".pth") or name.endswith(".pkl") for name in CHECKPOINTS)

    @pytest.mark.parametrize("machine,triple", [
        ("x86_64", "x86_64-linux"),
        ("aarch64", "sbsa-linux"),
        ("riscv64", "x86_64-linux"),
    ])
    def test_cuda_target_triple(self, machine, triple):
        from slam_setup.installer.core.environment import cuda_target_triple

        assert cuda_target_triple(machine) == triple


class TestPackageExports:
    """The installer package re-exports the core API."""

    def test_installer_exports(self):
        import slam_setup.installer as installer

        for name in ("Provisioner", "StepExecutor", "ArtifactFetcher",
                     "BuildContext", "InstallationError"):
            assert hasattr(installer, name)

    def test_version(self):
        from slam_setup import __version__

        assert __version__.count(".") == 2
