"""Tests for logging setup and secret redaction."""

from loguru import logger

from ado_github_migrate.utils.logging import (
    clear_secrets,
    mask_secrets,
    register_secret,
    setup_logging,
)


class TestSecretRedaction:
    """Test token masking."""

    def test_registered_secret_masked(self):
        register_secret('s3cr3t-token')

        assert mask_secrets('Authorization: Bearer s3cr3t-token') == (
            'Authorization: Bearer ***'
        )

    def test_url_encoded_secret_masked(self):
        register_secret('p@ss/word')

        assert mask_secrets('https://x?token=p%40ss%2Fword') == 'https://x?token=***'

    def test_empty_secret_ignored(self):
        register_secret('')
        register_secret(None)

        assert mask_secrets('nothing to hide') == 'nothing to hide'

    def test_clear_secrets(self):
        register_secret('s3cr3t-token')
        clear_secrets()

        assert mask_secrets('s3cr3t-token') == 's3cr3t-token'

    def test_log_messages_redacted(self, log_records):
        register_secret('s3cr3t-token')

        logger.info('Using token s3cr3t-token')

        assert ('INFO', 'Using token ***') in log_records


class TestSetupLogging:
    """Test handler configuration."""

    def test_file_handler(self, tmp_path):
        log_file = tmp_path / 'logs' / 'migration.log'

        setup_logging('DEBUG', str(log_file))
        logger.info('written to file')

        content = log_file.read_text()
        logger.remove()
        assert 'written to file' in content
        assert 'Log file:' in content
