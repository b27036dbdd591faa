import threading
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from llama_desk.frameworks_drivers.config import AdmissionConfig
from llama_desk.frameworks_drivers.system_monitor import BYTES_PER_MB, SystemMonitor

PSUTIL = "llama_desk.frameworks_drivers.system_monitor.psutil"


@pytest.fixture
def mock_psutil():
    with patch(PSUTIL) as psutil:
        psutil.virtual_memory.return_value = SimpleNamespace(available=4096 * BYTES_PER_MB, total=16384 * BYTES_PER_MB)
        psutil.cpu_percent.return_value = 12.5
        psutil.cpu_count.return_value = 8
        psutil.disk_usage.return_value = SimpleNamespace(free=50 * 1024 ** 3)
        yield psutil


class TestSystemMonitor:
    def test_get_metrics(self, mock_psutil):
        metrics = SystemMonitor().get_metrics()

        assert metrics.cpu_usage_percent == 12.5
        assert metrics.free_memory_mb == 4096
        assert metrics.total_memory_mb == 16384

    def test_cpu_sampling_never_blocks(self, mock_psutil):
        monitor = SystemMonitor()
        mock_psutil.cpu_percent.assert_called_once_with(interval=None)

        monitor.try_acquire()

        assert mock_psutil.cpu_percent.call_count == 2
        for call in mock_psutil.cpu_percent.call_args_list:
            assert call.kwargs.get("interval") is None

    def test_get_system_info(self, mock_psutil, temp_dir):
        info = SystemMonitor(base_dir=str(temp_dir / "not-created-yet")).get_system_info()

        assert info.cpu_cores == 8
        assert info.disk_free_gb == 50.0
        assert info.total_ram_mb == 16384
        mock_psutil.disk_usage.assert_called_once_with(str(temp_dir))

    def test_allows_when_idle_and_resources_available(self, mock_psutil):
        decision = SystemMonitor().can_generate()

        assert decision.allowed is True
        assert decision.reason is None

    def test_rejects_high_cpu(self, mock_psutil):
        mock_psutil.cpu_percent.return_value = 95.0

        decision = SystemMonitor().can_generate()

        assert decision.allowed is False
        assert decision.reason == "CPU usage is too high (95%)"

    def test_rejects_low_memory(self, mock_psutil):
        mock_psutil.virtual_memory.return_value = SimpleNamespace(available=300 * BYTES_PER_MB, total=8192 * BYTES_PER_MB)

        decision = SystemMonitor().can_generate()

        assert decision.allowed is False
        assert decision.reason == "Free memory too low (300MB)"

    def test_thresholds_are_configurable(self, mock_psutil):
        mock_psutil.cpu_percent.return_value = 60.0

        decision = SystemMonitor(AdmissionConfig(cpu_threshold_percent=50)).can_generate()

        assert decision.allowed is False

    def test_rejects_while_generating(self, mock_psutil):
        monitor = SystemMonitor()
        monitor.set_generating(True)

        assert monitor.can_generate().reason == "A generation is already in progress"
        monitor.set_generating(False)
        assert monitor.can_generate().allowed is True

    def test_try_acquire_then_release(self, mock_psutil):
        monitor = SystemMonitor()

        assert monitor.try_acquire().allowed is True
        assert monitor.generating is True
        assert monitor.try_acquire().allowed is False

        monitor.release()
        assert monitor.generating is False
        assert monitor.try_acquire().allowed is True

    def test_rejected_acquire_does_not_mark_generating(self, mock_psutil):
        mock_psutil.cpu_percent.return_value = 99.0
        monitor = SystemMonitor()

        assert monitor.try_acquire().allowed is False
        assert monitor.generating is False

    def test_concurrent_acquire_admits_exactly_one(self, mock_psutil):
        monitor = SystemMonitor()
        barrier = threading.Barrier(8)
        results = []

        def contend():
            barrier.wait()
            results.append(monitor.try_acquire().allowed)

        threads = [threading.Thread(target=contend) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 1
