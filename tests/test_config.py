"""
Tests for configuration loading — config.yaml and apps/*.yaml bundles.
"""

import textwrap
from pathlib import Path

import pytest

from gdf.core.config.bundle_loader import is_valid_name, load_all, load_bundle, validate_bundle
from gdf.core.config.loader import DEFAULT_HISTORY_MB, ConfigError, load_config
from gdf.core.engine.errors import ErrorKind
from gdf.core.models.bundle import Bundle, Confirm, Dotfile, InitSnippet, Plugin, Shell, TargetMap


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, gdf_root):
        config = load_config(gdf_root)
        assert config.conflict_resolution.dotfiles == "error"
        assert config.history.max_size_mb == DEFAULT_HISTORY_MB
        assert config.security.confirm_scripts is True
        assert config.shell == ""

    def test_values(self, gdf_root):
        (gdf_root / "config.yaml").write_text(textwrap.dedent("""\
            conflict_resolution:
              dotfiles: backup_and_replace
            history:
              max_size_mb: 64
            security:
              confirm_scripts: false
            shell: zsh
        """))
        config = load_config(gdf_root)
        assert config.conflict_resolution.dotfiles == "backup_and_replace"
        assert config.history.max_size_mb == 64
        assert config.security.confirm_scripts is False
        assert config.shell == "zsh"

    @pytest.mark.parametrize("quota", ["0", "-10", "null"])
    def test_non_positive_quota_defaults(self, gdf_root, quota):
        (gdf_root / "config.yaml").write_text(f"history:\n  max_size_mb: {quota}\n")
        assert load_config(gdf_root).history.max_size_mb == DEFAULT_HISTORY_MB

    def test_null_sections(self, gdf_root):
        (gdf_root / "config.yaml").write_text("history:\nsecurity:\n  confirm_scripts:\n")
        config = load_config(gdf_root)
        assert config.history.max_size_mb == DEFAULT_HISTORY_MB
        assert config.security.confirm_scripts is True

    def test_empty_file(self, gdf_root):
        (gdf_root / "config.yaml").write_text("")
        assert load_config(gdf_root).conflict_resolution.dotfiles == "error"

    def test_invalid_yaml(self, gdf_root):
        (gdf_root / "config.yaml").write_text("history: [unclosed\n")
        with pytest.raises(ConfigError) as exc:
            load_config(gdf_root)
        assert exc.value.kind is ErrorKind.INPUT_VALIDATION
        assert exc.value.path.endswith("config.yaml")

    def test_not_a_mapping(self, gdf_root):
        (gdf_root / "config.yaml").write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(gdf_root)

    def test_bad_type(self, gdf_root):
        (gdf_root / "config.yaml").write_text("history:\n  max_size_mb: lots\n")
        with pytest.raises(ConfigError):
            load_config(gdf_root)


# ── Bundles ──────────────────────────────────────────────────────


class TestLoadBundle:
    def test_full_bundle(self, write_bundle):
        path = write_bundle("zsh", """\
            kind: Bundle
            name: zsh
            description: Z shell
            dependencies: [git]
            package:
              brew: zsh
              apt: zsh
              custom:
                script: ./install.sh
                confirm: null
            dotfiles:
              - source: zsh/.zshrc
                target: ~/.zshrc
              - source: zsh/work.zsh
                target:
                  default: ~/.config/zsh/work.zsh
                  macos: ~/Library/zsh/work.zsh
                when: hostname =~ ^work-
            shell:
              aliases:
                ll: ls -la
              env:
                EDITOR: vim
              completions:
                zsh: kubectl completion zsh
              init:
                - name: prompt
                  common: eval "$(starship init zsh)"
                  guard: command -v starship >/dev/null
            hooks:
              post_link:
                - echo linked
              apply:
                - run: echo applied
                  when: os == macos
        """)

        bundle = load_bundle(path)

        assert bundle.name == "zsh"
        assert bundle.dependencies == ["git"]
        assert bundle.package.apt.name == "zsh"
        assert bundle.package.custom.confirm is Confirm.DEFAULT
        assert isinstance(bundle.dotfiles[1].target, TargetMap)
        assert bundle.dotfiles[1].target_for("macos") == "~/Library/zsh/work.zsh"
        assert bundle.dotfiles[1].target_for("wsl") == "~/.config/zsh/work.zsh"
        assert bundle.shell.init[0].guard.startswith("command -v")
        assert bundle.hooks.apply[0].when == "os == macos"

    def test_validation_errors_carry_field_paths(self, write_bundle):
        path = write_bundle("bad", """\
            name: Bad_Name
            dotfiles:
              - target: ~/.x
              - source: y
            plugins:
              - name: p
            package:
              custom:
                sudo: true
        """)
        with pytest.raises(ConfigError) as exc:
            load_bundle(path)
        fields = [e.field for e in exc.value.errors]
        assert fields == [
            "name",
            "dotfiles[0].source",
            "dotfiles[1].target",
            "plugins[0].install",
            "package.custom.script",
        ]

    def test_schema_errors(self, write_bundle):
        path = write_bundle("x", "name: x\ndependencies: 5\n")
        with pytest.raises(ConfigError) as exc:
            load_bundle(path)
        assert exc.value.errors[0].field == "dependencies"

    def test_not_a_mapping(self, write_bundle):
        path = write_bundle("x", "- just\n- a list\n")
        with pytest.raises(ConfigError):
            load_bundle(path)


class TestValidateBundle:
    def test_valid(self):
        assert validate_bundle(Bundle(name="kube-tools")) == []

    @pytest.mark.parametrize("name, ok", [
        ("git", True),
        ("k9s", True),
        ("my-app", True),
        ("9lives", False),
        ("My", False),
        ("a_b", False),
        ("", False),
    ])
    def test_names(self, name, ok):
        assert is_valid_name(name) is ok

    def test_shell_init_rules(self):
        bundle = Bundle(
            name="x",
            shell=Shell(init=[
                InitSnippet(name="a", common="echo"),
                InitSnippet(name="a", bash="echo"),
                InitSnippet(common="echo"),
                InitSnippet(name="empty"),
            ]),
        )
        errors = [str(e) for e in validate_bundle(bundle)]
        assert errors == [
            "shell.init[1].name: must be unique within shell.init",
            "shell.init[2].name: is required",
            "shell.init[3]: must define at least one of common, bash, or zsh",
        ]

    def test_plugins_and_dotfiles(self):
        bundle = Bundle(
            name="x",
            dotfiles=[Dotfile(source="a", target=TargetMap())],
            plugins=[Plugin(install="x")],
        )
        fields = [e.field for e in validate_bundle(bundle)]
        assert fields == ["dotfiles[0].target", "plugins[0].name"]


class TestLoadAll:
    def test_sorted_and_filtered(self, gdf_root, write_bundle):
        write_bundle("zsh", "name: zsh\n")
        write_bundle("git", "name: git\n")
        (gdf_root / "apps" / "README.md").write_text("not a bundle")

        names = [b.name for b in load_all(gdf_root / "apps")]

        assert names == ["git", "zsh"]

    def test_missing_directory(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="Apps directory not found"):
            load_all(tmp_path / "apps")

    def test_duplicate_names(self, gdf_root, write_bundle):
        write_bundle("git", "name: git\n")
        write_bundle("git-copy", "name: git\n")
        with pytest.raises(ConfigError, match="duplicate bundle name"):
            load_all(gdf_root / "apps")
