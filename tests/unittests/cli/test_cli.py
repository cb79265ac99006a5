from unittest.mock import patch

import pytest
from click.testing import CliRunner
from gevent.event import Event

from mint_runner import __version__, main
from mint_runner.exceptions import ChainIdMismatch, ProviderError
from tests.unittests.conftest import FakeChainClient
from tests.unittests.constants import TEST_CONTRACT_ADDRESS, TEST_PRIVATE_KEYS, TEST_RPC_URL

MINIMAL_ENV = {
    "RPC_URL": TEST_RPC_URL,
    "CONTRACT_ADDRESS": TEST_CONTRACT_ADDRESS,
    "PRIVATE_KEY": TEST_PRIVATE_KEYS[0],
}


@pytest.fixture(scope="module")
def runner():
    return CliRunner()


class TestVersion:
    def test_short_version(self, runner):
        result = runner.invoke(main.main, ["version", "--short"])
        assert result.exit_code == 0
        assert result.output.strip() == __version__

    def test_full_version(self, runner):
        result = runner.invoke(main.main, ["version"])
        assert result.exit_code == 0
        assert '"mint_runner"' in result.output
        assert '"web3"' in result.output


class TestRunCommand:
    # Patch the logging setup and the run itself, we only care about how
    # the settings are collected here.
    @pytest.fixture(autouse=True)
    def patched_run(self):
        with patch("mint_runner.main.configure_logging"), patch(
            "mint_runner.main.run_", return_value=0
        ) as run_:
            yield run_

    def test_settings_are_read_from_the_environment(self, runner, patched_run):
        result = runner.invoke(main.run, [], env=MINIMAL_ENV)
        assert result.exit_code == 0
        raw_settings = patched_run.call_args.args[0]
        for key, value in MINIMAL_ENV.items():
            assert raw_settings[key] == value

    def test_options_override_the_environment(self, runner, patched_run):
        result = runner.invoke(
            main.run, ["--rpc-url", "http://option:8545", "--dry-run"], env=MINIMAL_ENV
        )
        assert result.exit_code == 0
        raw_settings = patched_run.call_args.args[0]
        assert raw_settings["RPC_URL"] == "http://option:8545"
        assert raw_settings["DRY_RUN"] == "1"

    def test_environment_overrides_config_file(self, runner, patched_run, tmp_path):
        config_file = tmp_path.joinpath("mint.yaml")
        config_file.write_text("RPC_URL: http://file:8545\nPARALLEL: 4\n")

        result = runner.invoke(main.run, ["--config-file", str(config_file)], env=MINIMAL_ENV)
        assert result.exit_code == 0
        raw_settings = patched_run.call_args.args[0]
        assert raw_settings["RPC_URL"] == TEST_RPC_URL
        assert raw_settings["PARALLEL"] == 4

    def test_missing_config_file_is_a_usage_error(self, runner, patched_run):
        result = runner.invoke(main.run, ["--config-file", "/does/not/exist.yaml"])
        assert result.exit_code == 2
        patched_run.assert_not_called()

    def test_broken_config_file_exits_with_1(self, runner, patched_run, tmp_path):
        config_file = tmp_path.joinpath("mint.yaml")
        config_file.write_text("- not a mapping\n")

        result = runner.invoke(main.run, ["--config-file", str(config_file)])
        assert result.exit_code == 1
        patched_run.assert_not_called()

    def test_exit_code_is_forwarded(self, runner, patched_run):
        patched_run.return_value = 1
        result = runner.invoke(main.run, [], env=MINIMAL_ENV)
        assert result.exit_code == 1


class TestRun:
    @pytest.fixture
    def fake_client(self):
        client = FakeChainClient(chain_id=1)
        with patch("mint_runner.main.ChainClient.from_url", return_value=client):
            yield client

    @pytest.fixture(autouse=True)
    def no_pauses(self, recorded_pauses):
        return recorded_pauses

    def test_missing_settings_fail_before_network_access(self, fake_client):
        with patch("mint_runner.main.ChainClient.from_url") as from_url:
            assert main.run_({"RPC_URL": TEST_RPC_URL}, cancel_event=Event()) == 1
        from_url.assert_not_called()

    def test_invalid_private_key_fails_before_network_access(self):
        settings = dict(MINIMAL_ENV, PRIVATE_KEY="0xnotakey")
        with patch("mint_runner.main.ChainClient.from_url") as from_url:
            assert main.run_(settings, cancel_event=Event()) == 1
        from_url.assert_not_called()

    def test_chain_id_mismatch(self, fake_client):
        assert main.run_(dict(MINIMAL_ENV, CHAIN_ID="5"), cancel_event=Event()) == 1
        assert fake_client.nonce_queries == []

    def test_preflight_raises_on_mismatch(self, fake_client, make_config):
        with pytest.raises(ChainIdMismatch, match="expected 5, got 1"):
            main.preflight(fake_client, make_config(chain_id=5))
        assert main.preflight(fake_client, make_config(chain_id=1)) == 1

    def test_single_mode_success(self, fake_client):
        assert main.run_(dict(MINIMAL_ENV, CHAIN_ID="1"), cancel_event=Event()) == 0
        assert len(fake_client.sent) == 1

    def test_single_mode_dry_run(self, fake_client):
        assert main.run_(dict(MINIMAL_ENV, DRY_RUN="1"), cancel_event=Event()) == 0
        assert fake_client.sent == []
        assert len(fake_client.calls) == 1

    def test_single_mode_failure_exits_with_1(self, fake_client):
        fake_client.send_errors = [ProviderError("insufficient funds for gas * price + value")]
        assert main.run_(MINIMAL_ENV, cancel_event=Event()) == 1

    def test_multi_mode_tolerates_failing_signers(self, fake_client, accounts):
        settings = dict(
            MINIMAL_ENV,
            MODE="multi",
            PRIVATE_KEYS=",".join(TEST_PRIVATE_KEYS[:3]),
            PARALLEL="2",
            TX_DELAY_MS="0",
        )
        fake_client.send_error_for[accounts[1].address] = ProviderError("insufficient funds")
        assert main.run_(settings, cancel_event=Event()) == 0
        assert len(fake_client.sent) == 3

    def test_unexpected_errors_exit_with_1(self, fake_client):
        with patch("mint_runner.main.preflight", side_effect=RuntimeError("boom")):
            assert main.run_(MINIMAL_ENV, cancel_event=Event()) == 1
