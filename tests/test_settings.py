from pathlib import Path

from mminstaller import APP_NAME, __version__
from mminstaller.download.manager import USER_AGENT
from mminstaller.models import Side
from mminstaller.settings import InstallerSettings


def test_workspace_layout(tmp_path):
    settings = InstallerSettings(install_dir=tmp_path)

    assert settings.app_dir == tmp_path / APP_NAME
    assert settings.state_path == tmp_path / "mm-installer" / "installer-state.json"
    assert settings.temp_dir == settings.app_dir / ".temp"
    assert settings.log_dir == settings.app_dir / "logs"
    assert settings.manifest_path == tmp_path / "config.yaml"


def test_user_agent_names_the_installer():
    assert USER_AGENT == f"mm-installer/{__version__}"


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("MMINSTALLER_INSTALL_DIR", str(tmp_path))
    monkeypatch.setenv("MMINSTALLER_SIDE", "SERVER")
    monkeypatch.setenv("MMINSTALLER_VERIFY_ON_DISK", "0")
    monkeypatch.setenv("MMINSTALLER_MODRINTH_API", "http://localhost:1234/v2/")

    settings = InstallerSettings.from_env(max_retries=5)

    assert settings.install_dir == Path(tmp_path)
    assert settings.side == Side.SERVER
    assert settings.verify_on_disk is False
    assert settings.modrinth_api_url == "http://localhost:1234/v2"
    assert settings.max_retries == 5
