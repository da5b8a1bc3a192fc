from __future__ import annotations

from pathlib import Path

import pytest

from nexus_bridge.archive.fomod import FomodChoices, FomodInstaller, find_module_config
from nexus_bridge.archive.materializer import PackageMaterializer
from nexus_bridge.exceptions import MaterializationError
from nexus_bridge.models.collection import Package

from conftest import make_package

MODULE_CONFIG = """<?xml version="1.0" encoding="UTF-8"?>
<config xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">
  <moduleName>Test Mod</moduleName>
  <requiredInstallFiles>
    <folder source="core" destination="" />
  </requiredInstallFiles>
  <installSteps order="Explicit">
    <installStep name="Main">
      <optionalFileGroups order="Explicit">
        <group name="Textures" type="SelectExactlyOne">
          <plugins order="Explicit">
            <plugin name="2K">
              <files>
                <folder source="options\\2k" destination="textures" />
              </files>
              <conditionFlags>
                <flag name="res">2k</flag>
              </conditionFlags>
            </plugin>
            <plugin name="4K">
              <files>
                <folder source="options/4k" destination="textures" />
              </files>
              <conditionFlags>
                <flag name="res">4k</flag>
              </conditionFlags>
            </plugin>
          </plugins>
        </group>
        <group name="Plugin" type="SelectAny">
          <plugins order="Explicit">
            <plugin name="ESP">
              <files>
                <file source="Options/Plugin/Test.esp" />
              </files>
            </plugin>
          </plugins>
        </group>
      </optionalFileGroups>
    </installStep>
  </installSteps>
  <conditionalFileInstalls>
    <patterns>
      <pattern>
        <dependencies operator="And">
          <flagDependency flag="res" value="2K" />
        </dependencies>
        <files>
          <file source="patches/2k_patch.esp" destination="patch.esp" />
        </files>
      </pattern>
      <pattern>
        <dependencies operator="Or">
          <flagDependency flag="res" value="8k" />
          <dependencies operator="And">
            <flagDependency flag="missing" value="1" />
          </dependencies>
        </dependencies>
        <files>
          <file source="patches/never.esp" />
        </files>
      </pattern>
    </patterns>
  </conditionalFileInstalls>
</config>
"""


def _archive(root: Path) -> Path:
    files = [
        "core/meshes/base.nif",
        "options/2k/skin.dds",
        "options/4k/skin.dds",
        "options/plugin/test.esp",
        "patches/2k_patch.esp",
        "patches/never.esp",
    ]
    for rel in files:
        target = root / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(rel)
    (root / "fomod").mkdir()
    (root / "fomod" / "ModuleConfig.xml").write_text(MODULE_CONFIG, encoding="utf-8")
    return root


def _choices(*options: tuple[str, str, list[str]]) -> dict:
    return {
        "type": "fomod",
        "options": [
            {
                "name": "Main",
                "groups": [
                    {"name": group, "choices": [{"name": c, "idx": 0} for c in names]}
                    for _, group, names in options
                ],
            }
        ],
    }


def test_choices_from_payload_ignores_garbage() -> None:
    choices = FomodChoices.from_payload({"options": [None, {"name": "Main", "groups": [{"name": "G", "choices": [{"name": "A"}, "x"]}]}]})
    assert choices.selected("main", "g") == {"a"}
    assert FomodChoices.from_payload(None).steps == []


def test_find_module_config_ignores_case(tmp_path: Path) -> None:
    (tmp_path / "Wrapper" / "FOMOD").mkdir(parents=True)
    config = tmp_path / "Wrapper" / "FOMOD" / "moduleconfig.xml"
    config.write_text("<config/>")
    assert find_module_config(tmp_path) == config


def test_fomod_replays_selected_options(tmp_path: Path) -> None:
    source = _archive(tmp_path / "src")
    dest = tmp_path / "dest"
    choices = FomodChoices.from_payload(
        _choices(("Main", "Textures", ["2K"]), ("Main", "Plugin", ["ESP"]))
    )

    installer = FomodInstaller(choices)
    installer.process(source, dest)

    assert (dest / "meshes" / "base.nif").is_file()
    assert (dest / "textures" / "skin.dds").read_text() == "options/2k/skin.dds"
    assert (dest / "Test.esp").is_file()
    assert (dest / "patch.esp").is_file()
    assert not (dest / "never.esp").exists()
    assert installer.flags == {"res": "2k"}


def test_fomod_unselected_options_are_skipped(tmp_path: Path) -> None:
    source = _archive(tmp_path / "src")
    dest = tmp_path / "dest"
    FomodInstaller(FomodChoices.from_payload(_choices(("Main", "Textures", ["4K"])))).process(source, dest)

    assert (dest / "textures" / "skin.dds").read_text() == "options/4k/skin.dds"
    assert not (dest / "Test.esp").exists()
    assert not (dest / "patch.esp").exists()


def test_fomod_without_config_raises(tmp_path: Path) -> None:
    (tmp_path / "src").mkdir()
    with pytest.raises(MaterializationError):
        FomodInstaller(FomodChoices()).process(tmp_path / "src", tmp_path / "dest")


def test_materializer_routes(tmp_path: Path) -> None:
    source = _archive(tmp_path / "src")
    materializer = PackageMaterializer()

    fomod_package = Package(index=0, name="Opt", choices=_choices(("Main", "Textures", ["2K"])))
    result = materializer.install(source, tmp_path / "a", fomod_package)
    assert result.method == "fomod" and result.verify is False

    plain = tmp_path / "plain"
    (plain / "meshes").mkdir(parents=True)
    (plain / "meshes" / "x.nif").write_bytes(b"x")
    result = materializer.install(plain, tmp_path / "b", make_package(1, "Plain"))
    assert result.method == "standard" and result.verify is True
    assert (tmp_path / "b" / "meshes" / "x.nif").is_file()
