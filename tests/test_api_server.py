"""
test_api_server.py
~~~~~~~~~~~~~~~~~~

Tests for the REST API using the Flask test client.
"""

import pytest

from playground import api_server
from playground import config as settings


@pytest.fixture
def client(tmp_path, monkeypatch):
    """Test client backed by a temporary model directory."""
    monkeypatch.setattr(settings, 'MODEL_DIR', str(tmp_path / "models"))
    api_server.active_networks.clear()
    api_server.app.config['TESTING'] = True
    with api_server.app.test_client() as test_client:
        yield test_client
    api_server.active_networks.clear()


def _create(client, **config):
    body = {'network_shape': [2, 3, 1], 'seed': 11}
    body.update(config)
    response = client.post('/api/networks', json=body)
    assert response.status_code == 201
    return response.get_json()['network_id']


@pytest.mark.integration
class TestNetworkEndpoints:
    """Test building, inspecting and training networks over HTTP."""

    def test_status(self, client):
        _create(client)
        data = client.get('/api/status').get_json()
        assert data == {'status': 'online', 'active_networks': 1}

    def test_create_network(self, client):
        response = client.post('/api/networks', json={
            'network_shape': [2, 4, 1], 'activation': 'relu',
            'regularization': 'L1', 'optimizer': 'adam'
        })
        data = response.get_json()
        assert response.status_code == 201
        assert data['architecture'] == [2, 4, 1]
        assert data['config']['activation'] == 'relu'
        assert data['config']['regularization'] == 'l1'
        assert data['iteration'] == 0

    def test_create_network_defaults(self, client):
        response = client.post('/api/networks')
        assert response.status_code == 201
        assert response.get_json()['architecture'] == [2, 4, 2, 1]

    def test_create_invalid_network(self, client):
        response = client.post('/api/networks', json={'network_shape': [2, 2]})
        assert response.status_code == 400
        assert 'error' in response.get_json()

    def test_get_network_state(self, client):
        network_id = _create(client)
        data = client.get(f'/api/networks/{network_id}').get_json()
        assert data['state']['shape'] == [2, 3, 1]
        assert len(data['state']['links']) == 9
        assert data['state']['layers'][0][0]['id'] == 'x1'

    def test_unknown_network(self, client):
        assert client.get('/api/networks/missing').status_code == 404
        assert client.post('/api/networks/missing/step', json={}).status_code == 404

    def test_forward(self, client):
        network_id = _create(client)
        response = client.post(f'/api/networks/{network_id}/forward', json={'inputs': [0.5, -0.5]})
        assert response.status_code == 200
        assert isinstance(response.get_json()['output'], float)

    def test_forward_batch(self, client):
        network_id = _create(client)
        response = client.post(f'/api/networks/{network_id}/forward',
                               json={'batch': [[0.5, -0.5], [1.0, 1.0], [0.0, 0.0]]})
        assert response.status_code == 200
        assert len(response.get_json()['outputs']) == 3

    def test_forward_shape_mismatch(self, client):
        network_id = _create(client)
        response = client.post(f'/api/networks/{network_id}/forward', json={'inputs': [1, 2, 3]})
        data = response.get_json()
        assert response.status_code == 400
        assert data['expected'] == 2
        assert data['actual'] == 3

    def test_step(self, client):
        network_id = _create(client, batch_size=2)
        response = client.post(f'/api/networks/{network_id}/step', json={
            'inputs': [[0.1, 0.2], [0.9, -0.3], [-1.0, 1.0], [0.0, 0.5]],
            'targets': [1, -1, 1, -1]
        })
        data = response.get_json()
        assert response.status_code == 200
        assert data['iteration'] == 2
        assert data['loss'] >= 0

        summary = client.get(f'/api/networks/{network_id}').get_json()
        assert summary['iteration'] == 2
        assert summary['loss'] == data['loss']

    def test_step_shape_mismatch_changes_nothing(self, client):
        network_id = _create(client)
        before = client.get(f'/api/networks/{network_id}').get_json()['state']['links']

        response = client.post(f'/api/networks/{network_id}/step', json={
            'inputs': [[0.1, 0.2], [0.1, 0.2, 0.3]], 'targets': [1, 1]
        })

        assert response.status_code == 400
        after = client.get(f'/api/networks/{network_id}').get_json()['state']['links']
        assert after == before

    @pytest.mark.parametrize('body', [
        {},
        {'inputs': [[0.1, 0.2]]},
        {'inputs': [[0.1, 0.2]], 'targets': [1, 2]},
        {'inputs': [['a', 0.2]], 'targets': [1]},
        {'inputs': 'nope', 'targets': [1]},
    ])
    def test_step_bad_body(self, client, body):
        network_id = _create(client)
        response = client.post(f'/api/networks/{network_id}/step', json=body)
        assert response.status_code == 400

    def test_loss(self, client):
        network_id = _create(client)
        response = client.post(f'/api/networks/{network_id}/loss', json={
            'inputs': [[0.1, 0.2], [0.3, 0.4]], 'targets': [0, 1]
        })
        assert response.status_code == 200
        assert response.get_json()['loss'] >= 0


@pytest.mark.integration
class TestPersistenceEndpoints:
    """Test saving, listing, restoring and deleting networks."""

    def test_save_and_restore(self, client):
        network_id = _create(client, optimizer='adam')
        client.post(f'/api/networks/{network_id}/step',
                    json={'inputs': [[0.1, 0.2]], 'targets': [1]})
        weights = client.get(f'/api/networks/{network_id}').get_json()['state']['links']

        assert client.post(f'/api/networks/{network_id}/save').status_code == 200

        # Simulate a restart
        api_server.active_networks.clear()
        data = client.get(f'/api/networks/{network_id}').get_json()
        assert data['state']['links'] == weights
        assert data['iteration'] == 1
        assert data['config']['optimizer'] == 'adam'

    def test_save_unknown(self, client):
        assert client.post('/api/networks/missing/save').status_code == 404

    def test_list_networks(self, client):
        saved_id = _create(client)
        client.post(f'/api/networks/{saved_id}/save')
        api_server.active_networks.clear()
        memory_id = _create(client)

        networks = client.get('/api/networks').get_json()['networks']
        statuses = {net['network_id']: net['status'] for net in networks}
        assert statuses == {memory_id: 'in_memory', saved_id: 'saved'}

    def test_delete_network(self, client):
        network_id = _create(client)
        client.post(f'/api/networks/{network_id}/save')

        data = client.delete(f'/api/networks/{network_id}').get_json()
        assert data['deleted_from_memory'] is True
        assert data['deleted_from_disk'] is True
        assert client.get(f'/api/networks/{network_id}').status_code == 404
        assert client.delete(f'/api/networks/{network_id}').status_code == 404

    def test_delete_all(self, client):
        first = _create(client)
        _create(client)
        client.post(f'/api/networks/{first}/save')

        data = client.delete('/api/networks').get_json()
        assert data['deleted_count'] == 2
        assert data['deleted_from_disk'] == 1
        assert client.get('/api/networks').get_json()['networks'] == []

    def test_cleanup(self, client):
        response = client.post('/api/networks/cleanup', json={'days': 2})
        assert response.status_code == 200
        assert response.get_json()['deleted_count'] == 0

        assert client.post('/api/networks/cleanup', json={'days': -1}).status_code == 400
