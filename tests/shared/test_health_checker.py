import pytest
from unittest.mock import MagicMock, patch, AsyncMock

import requests

from llama_desk.shared.health_checker import HealthChecker


class TestHealthChecker:
    """Test cases for the HealthChecker utility class."""

    @pytest.mark.asyncio
    async def test_check_http_endpoint_success(self):
        """Test successful HTTP endpoint check."""
        with patch('asyncio.to_thread', new_callable=AsyncMock) as mock_to_thread:
            mock_response = MagicMock()
            mock_response.status_code = 200
            mock_to_thread.return_value = mock_response

            result = await HealthChecker.check_http_endpoint("http://127.0.0.1:8080", "/health", 1.0)

            assert result is True
            mock_to_thread.assert_called_once_with(requests.get, "http://127.0.0.1:8080/health", timeout=1.0)

    @pytest.mark.asyncio
    async def test_check_http_endpoint_bad_status(self):
        """Loading servers answer 503 until the model is in memory."""
        with patch('asyncio.to_thread', new_callable=AsyncMock) as mock_to_thread:
            mock_response = MagicMock()
            mock_response.status_code = 503
            mock_to_thread.return_value = mock_response

            result = await HealthChecker.check_http_endpoint("http://127.0.0.1:8080")

            assert result is False

    @pytest.mark.asyncio
    async def test_check_http_endpoint_connection_refused(self):
        """Test HTTP endpoint check that raises a request exception."""
        with patch('asyncio.to_thread', new_callable=AsyncMock) as mock_to_thread:
            mock_to_thread.side_effect = requests.ConnectionError("Connection refused")

            result = await HealthChecker.check_http_endpoint("http://127.0.0.1:8080")

            assert result is False

    def test_check_process_running_none_process(self):
        """Test process check with None process."""
        result = HealthChecker.check_process_running(None)
        assert result is False

    def test_check_process_running_active_process(self):
        """Test process check with active process."""
        mock_process = MagicMock()
        mock_process.poll.return_value = None  # Process is still running

        result = HealthChecker.check_process_running(mock_process)
        assert result is True

    def test_check_process_running_exited_process(self):
        """Test process check with exited process."""
        mock_process = MagicMock()
        mock_process.poll.return_value = 1  # Process has exited

        result = HealthChecker.check_process_running(mock_process)
        assert result is False
