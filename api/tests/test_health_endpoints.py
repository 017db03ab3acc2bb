"""
Tests for the health check endpoint and service.

MongoDB is required; Redis is optional and only degrades the reported
status when it is configured but unreachable.
"""

import pytest
import json
from unittest.mock import Mock, patch
from pymongo.errors import ServerSelectionTimeoutError

from services.health import HealthCheckService
from services.mongodb import MongoDBService
from services.redis import RedisService


@pytest.fixture
def mock_services(flask_app):
    """Health service wired to mocked MongoDB and Redis."""
    mongodb_service = Mock(spec=MongoDBService)
    mongodb_service.client = Mock()
    mongodb_service.client.server_info.return_value = {"version": "7.0.2"}
    mongodb_service.database_name = "sewa_directory_test"

    redis_service = Mock(spec=RedisService)
    redis_service.is_available.return_value = True
    redis_service.ping.return_value = True
    redis_service.get_info.return_value = {
        "redis_version": "7.2.0",
        "used_memory": 2 * 1024 * 1024,
        "connected_clients": 3
    }

    health_service = HealthCheckService(mongodb_service, redis_service, "1.0.0")
    with patch.object(flask_app, 'health_service', health_service):
        yield {'mongodb': mongodb_service, 'redis': redis_service, 'health': health_service}


class TestHealthCheckEndpoint:
    """Test cases for the /api/healthz endpoint."""

    def test_health_check_success_all_healthy(self, client, mock_services):
        response = client.get('/api/healthz')

        assert response.status_code == 200
        data = json.loads(response.data)

        assert 'self' in data['_links']
        assert data['status'] == 'healthy'
        assert data['service'] == 'sewa-directory-api'
        assert data['version'] == '1.0.0'
        assert data['dependencies']['mongodb']['version'] == '7.0.2'
        assert data['dependencies']['redis']['status'] == 'healthy'
        assert 'system_metrics' in data

    def test_health_check_degraded_redis_unhealthy(self, client, mock_services):
        mock_services['redis'].ping.return_value = False

        response = client.get('/api/healthz')

        assert response.status_code == 200
        assert response.get_json()['status'] == 'degraded'

    def test_health_check_redis_disabled(self, client, mock_services):
        mock_services['redis'].is_available.return_value = False

        data = client.get('/api/healthz').get_json()

        assert data['status'] == 'healthy'
        assert data['dependencies']['redis']['status'] == 'disabled'

    def test_health_check_unhealthy_mongodb_down(self, client, mock_services):
        mock_services['mongodb'].client.admin.command.side_effect = ServerSelectionTimeoutError("no servers")

        response = client.get('/api/healthz')

        assert response.status_code == 503
        data = response.get_json()
        assert data['status'] == 'unhealthy'
        assert 'no servers' in data['dependencies']['mongodb']['error']


class TestHealthCheckService:
    """Test cases for the HealthCheckService class."""

    def test_overall_status_determination(self):
        health_service = HealthCheckService(Mock(spec=MongoDBService), Mock(spec=RedisService))

        assert health_service._determine_overall_status('healthy', ['healthy']) == 'healthy'
        assert health_service._determine_overall_status('healthy', ['disabled']) == 'healthy'
        assert health_service._determine_overall_status('healthy', ['unhealthy']) == 'degraded'
        assert health_service._determine_overall_status('unhealthy', ['healthy']) == 'unhealthy'

    def test_redis_health_details(self, mock_services):
        result = mock_services['health']._check_redis_health()

        assert result['status'] == 'healthy'
        assert result['version'] == '7.2.0'
        assert result['memory_usage_mb'] == 2.0
        assert result['connected_clients'] == 3

    @patch('psutil.cpu_percent')
    @patch('psutil.virtual_memory')
    @patch('psutil.disk_usage')
    def test_system_metrics_collection(self, mock_disk, mock_memory, mock_cpu):
        mock_cpu.return_value = 25.5
        mock_memory.return_value = Mock(used=1024 * 1024 * 1024, total=4 * 1024 * 1024 * 1024, percent=25.0)
        mock_disk.return_value = Mock(used=50 * 1024 ** 3, total=100 * 1024 ** 3)

        health_service = HealthCheckService(Mock(spec=MongoDBService), Mock(spec=RedisService))
        metrics = health_service._get_system_metrics()

        assert metrics['cpu_percent'] == 25.5
        assert metrics['memory']['used_mb'] == 1024.0
        assert metrics['disk']['percent'] == 50.0
