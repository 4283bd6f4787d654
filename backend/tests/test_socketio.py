def _events(sio_client, name):
    return [pkt for pkt in sio_client.get_received('/ws') if pkt['name'] == name]


def test_socket_connect_and_subscribe(sio_client):
    # Ensure we are connected to /ws
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    assert sio_client.is_connected('/ws')

    sio_client.emit('subscribe', {'matchId': 'abc'}, namespace='/ws')
    received = sio_client.get_received('/ws')
    subscribed = [pkt for pkt in received if pkt['name'] == 'subscribed']
    assert subscribed and subscribed[0]['args'][0] == {'channel': 'match-abc'}


def test_subscribe_requires_match_id(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('subscribe', {}, namespace='/ws')
    assert _events(sio_client, 'error')


def test_ping_pong(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('ping', {'t': 1}, namespace='/ws')
    pongs = _events(sio_client, 'pong')
    assert pongs and pongs[0]['args'][0] == {'t': 1}


def test_subscribers_receive_match_messages(sio_client, api):
    match_id = api('/create-match', 'alice').get_json()['matchId']
    sio_client.emit('subscribe', {'matchId': match_id}, namespace='/ws')
    sio_client.get_received('/ws')  # flush

    api('/join-match', 'bob', matchId=match_id)
    api('/action', 'bob', matchId=match_id, type='INPUT', dx=1, dz=2, t=3)

    messages = [pkt['args'][0] for pkt in _events_all(sio_client)]
    assert [m['type'] for m in messages] == ['MATCH_STATE', 'PLAYER_INPUT']
    assert messages[0]['seq'] == 1
    assert 'seq' not in messages[1]


def test_unsubscribed_sockets_receive_nothing(sio_client, api):
    match_id = api('/create-match', 'alice').get_json()['matchId']
    sio_client.emit('subscribe', {'matchId': match_id}, namespace='/ws')
    sio_client.emit('unsubscribe', {'matchId': match_id}, namespace='/ws')
    sio_client.get_received('/ws')

    api('/join-match', 'bob', matchId=match_id)
    assert _events_all(sio_client) == []


def _events_all(sio_client):
    return _events(sio_client, 'server_message')


def test_subscribe_rejects_non_object_payloads(sio_client):
    for payload in ('abc', ['abc']):
        sio_client.get_received('/ws')
        sio_client.emit('subscribe', payload, namespace='/ws')
        assert _events(sio_client, 'error')
        sio_client.emit('unsubscribe', payload, namespace='/ws')
        assert _events(sio_client, 'error')
