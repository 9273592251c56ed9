import json

import pytest

from buildpack import cli


def _write_config(tmp_path, layers_yaml: list[str]) -> str:
    config_path = tmp_path / "buildpack.yaml"
    config_path.write_text(
        "\n".join(
            [
                "build:",
                "  app_dir: app",
                "  layers_dir: layers",
                "  inherit_process_env: false",
                "logging:",
                "  log_dir: logs",
                "  level: WARNING",
                "layers:",
                *layers_yaml,
                "launch:",
                "  processes:",
                "    - type: web",
                "      command: bundle",
                "      args: [exec, rackup]",
                "      default: true",
            ]
        )
        + "\n",
        encoding="utf-8",
    )
    (tmp_path / "app").mkdir()
    return str(config_path)


def test_cli_list_layer_kinds_smoke(capsys):
    rc = cli.main(["list-layer-kinds"])
    assert rc == 0

    out = capsys.readouterr().out
    assert [line.split("\t")[0] for line in out.splitlines()] == [
        "bundler",
        "default_env",
        "gems_path",
        "in_app_dir_cache",
        "secret_key_base",
    ]


def test_cli_build_then_inspect_and_env(tmp_path, monkeypatch, capsys):
    monkeypatch.delenv("BUILDPACK_CONFIG", raising=False)
    config_path = _write_config(
        tmp_path,
        [
            "  - name: secret_key_base",
            "    kind: secret_key_base",
            "  - name: env_defaults",
            "    kind: default_env",
            "    options:",
            "      values:",
            "        RACK_ENV: production",
            "        MALLOC_ARENA_MAX: 2",
        ],
    )

    assert cli.main(["build", "--config", config_path]) == 0

    layers_dir = tmp_path / "layers"
    record = json.loads((layers_dir / "build.json").read_text(encoding="utf-8"))
    assert [entry["name"] for entry in record["layers"]] == ["secret_key_base", "env_defaults"]
    assert [entry["outcome"] for entry in record["layers"]] == ["created", "created"]
    assert record["processes"][0]["type"] == "web"
    assert list((tmp_path / "logs").glob("*_build.log"))
    capsys.readouterr()

    assert cli.main(["inspect", str(layers_dir)]) == 0
    rows = json.loads(capsys.readouterr().out)
    assert [row["name"] for row in rows] == ["env_defaults", "secret_key_base"]
    secret = rows[1]["metadata"]["secret"]

    assert cli.main(["env", str(layers_dir), "--scope", "launch"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines == [
        "MALLOC_ARENA_MAX=2",
        "RACK_ENV=production",
        f"SECRET_KEY_BASE={secret}",
    ]

    assert cli.main(["build", "--config", config_path]) == 0
    record = json.loads((layers_dir / "build.json").read_text(encoding="utf-8"))
    assert [entry["outcome"] for entry in record["layers"]] == ["kept", "created"]


def test_cli_build_prunes_layers_removed_from_config(tmp_path, monkeypatch):
    monkeypatch.delenv("BUILDPACK_CONFIG", raising=False)
    config_path = _write_config(
        tmp_path,
        [
            "  - name: secret_key_base",
            "    kind: secret_key_base",
        ],
    )
    assert cli.main(["build", "--config", config_path]) == 0
    assert (tmp_path / "layers" / "secret_key_base").is_dir()

    config_text = (tmp_path / "buildpack.yaml").read_text(encoding="utf-8")
    (tmp_path / "buildpack.yaml").write_text(
        config_text.replace(
            "  - name: secret_key_base\n    kind: secret_key_base\n",
            "  - name: env_defaults\n    kind: default_env\n",
        ),
        encoding="utf-8",
    )
    assert cli.main(["build", "--config", config_path]) == 0

    assert not (tmp_path / "layers" / "secret_key_base").exists()
    assert (tmp_path / "layers" / "env_defaults").is_dir()


def test_cli_build_unknown_layer_kind_fails(tmp_path, monkeypatch):
    monkeypatch.delenv("BUILDPACK_CONFIG", raising=False)
    config_path = _write_config(
        tmp_path,
        [
            "  - name: gems",
            "    kind: gem_path",
        ],
    )

    with pytest.raises(ValueError, match="did you mean: gems_path"):
        cli.main(["build", "--config", config_path])


def test_cli_env_requires_build_record(tmp_path):
    with pytest.raises(FileNotFoundError, match="No build record found"):
        cli.main(["env", str(tmp_path)])
