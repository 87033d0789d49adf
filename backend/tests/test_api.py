from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError

import volley.api.games as games_api
from volley import db
from volley.models import Game, Registration
from volley.services.registration.time_policy import utcnow


def _iso_in(**delta):
    return (utcnow() + timedelta(**delta)).replace(microsecond=0).isoformat()


def _setup(flask_app, make_user, login, players=3):
    make_user('admin', is_admin=True)
    admin = flask_app.test_client()
    login(admin, 'admin')
    clients = {}
    for index in range(1, players + 1):
        user = make_user(f'player{index}')
        player_client = flask_app.test_client()
        login(player_client, user.username)
        clients[user.username] = (user.id, player_client)
    return admin, clients


def _create_game(admin, **fields):
    payload = {'date_time': _iso_in(days=2), 'max_players': 2}
    payload.update(fields)
    res = admin.post('/api/games', json=payload)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def test_requires_login(client):
    assert client.get('/api/games').status_code == 401


def test_login_and_me(client, make_user, login):
    make_user('alice')
    assert client.post('/login', json={'username': 'alice', 'password': 'nope'}).status_code == 401
    login(client, 'alice')
    assert client.get('/users/me').get_json()['username'] == 'alice'


def test_join_waitlist_and_promotion(flask_app, make_user, login):
    admin, players = _setup(flask_app, make_user, login)
    game = _create_game(admin)
    (p1_id, p1), (p2_id, p2), (p3_id, p3) = players['player1'], players['player2'], players['player3']

    assert p1.post(f"/api/games/{game['id']}/register").status_code == 201
    assert p2.post(f"/api/games/{game['id']}/register").status_code == 201
    res = p3.post(f"/api/games/{game['id']}/register")
    assert res.status_code == 201
    assert res.get_json()['registration']['is_waitlist'] is True

    again = p1.post(f"/api/games/{game['id']}/register")
    assert again.status_code == 409
    assert again.get_json()['kind'] == 'AlreadyRegistered'

    view = p3.get(f"/api/games/{game['id']}").get_json()
    assert [p['user_id'] for p in view['players']] == [p1_id, p2_id]
    assert view['waitlist'][0]['user_id'] == p3_id
    assert view['waitlist'][0]['position'] == 1
    assert view['registration_state'] == 'waitlisted'

    res = p1.delete(f"/api/games/{game['id']}/register")
    assert res.status_code == 200
    body = res.get_json()
    assert body['removed']['user_id'] == p1_id
    assert [p['user_id'] for p in body['promoted']] == [p3_id]
    assert [p['user_id'] for p in body['game']['players']] == [p2_id, p3_id]
    assert body['game']['waitlist'] == []


def test_guest_registration(flask_app, make_user, login):
    admin, players = _setup(flask_app, make_user, login, players=1)
    game = _create_game(admin, max_players=3)
    p1_id, p1 = players['player1']

    res = p1.post(f"/api/games/{game['id']}/register", json={'guest_name': 'Max'})
    assert res.status_code == 201
    assert res.get_json()['registration']['guest_name'] == 'Max'
    assert p1.post(f"/api/games/{game['id']}/register", json={'guest_name': 'Max'}).status_code == 409
    assert p1.post(f"/api/games/{game['id']}/register", json={'guest_name': '  '}).status_code == 400

    res = p1.delete(f"/api/games/{game['id']}/register", json={'guest_name': 'Max'})
    assert res.status_code == 200
    assert res.get_json()['removed']['guest_name'] == 'Max'
    assert p1.delete(f"/api/games/{game['id']}/register").status_code == 404


def test_registration_not_open_and_readonly(flask_app, make_user, login):
    admin, players = _setup(flask_app, make_user, login, players=1)
    _, p1 = players['player1']
    far = _create_game(admin, date_time=_iso_in(days=20))
    res = p1.post(f"/api/games/{far['id']}/register")
    assert res.status_code == 403
    assert res.get_json()['kind'] == 'RegistrationNotYetOpen'
    assert 'registration_opens_at' in res.get_json()

    closed = _create_game(admin, readonly=True)
    assert p1.post(f"/api/games/{closed['id']}/register").get_json()['kind'] == 'ReadonlyGame'


def test_unregister_deadline(flask_app, make_user, login):
    admin, players = _setup(flask_app, make_user, login, players=1)
    _, p1 = players['player1']
    game = _create_game(admin, date_time=_iso_in(hours=3))
    assert p1.post(f"/api/games/{game['id']}/register").status_code == 201
    res = p1.delete(f"/api/games/{game['id']}/register")
    assert res.status_code == 403
    assert res.get_json()['kind'] == 'UnregisterDeadlinePassed'


def test_blocked_user_cannot_join(flask_app, make_user, login):
    admin, players = _setup(flask_app, make_user, login, players=1)
    p1_id, p1 = players['player1']
    game = _create_game(admin)
    assert admin.put(f'/users/{p1_id}/block', json={'reason': 'no-show'}).get_json()['block_reason'] == 'no-show'
    assert p1.post(f"/api/games/{game['id']}/register").get_json()['kind'] == 'UserBlocked'
    admin.put(f'/users/{p1_id}/block', json={'reason': None})
    assert p1.post(f"/api/games/{game['id']}/register").status_code == 201


def test_admin_participant_management(flask_app, make_user, login):
    admin, players = _setup(flask_app, make_user, login)
    game = _create_game(admin)
    (p1_id, p1), (p2_id, _), (p3_id, _) = players['player1'], players['player2'], players['player3']
    url = f"/api/games/{game['id']}/participants"

    assert p1.post(url, json={'user_id': p2_id}).status_code == 403
    for user_id in (p1_id, p2_id, p3_id):
        assert admin.post(url, json={'user_id': user_id}).status_code == 201
    assert admin.post(url, json={'user_id': 12345}).status_code == 404

    res = admin.post(f'{url}/{p3_id}/active')
    assert res.status_code == 409
    assert res.get_json()['kind'] == 'CapacityExceeded'

    res = admin.post(f'{url}/{p1_id}/waitlist')
    assert res.status_code == 200
    assert [p['user_id'] for p in res.get_json()['promoted']] == [p3_id]

    res = admin.delete(f'{url}/{p2_id}')
    assert [p['user_id'] for p in res.get_json()['promoted']] == [p1_id]
    assert admin.delete(f'{url}/{p2_id}').status_code == 404


def test_roster_locked_after_payment_requests(flask_app, make_user, login):
    admin, players = _setup(flask_app, make_user, login, players=1)
    p1_id, _ = players['player1']
    game = _create_game(admin)
    admin.put(f"/api/games/{game['id']}", json={'payment_requests_sent': True})
    res = admin.post(f"/api/games/{game['id']}/participants", json={'user_id': p1_id})
    assert res.status_code == 409
    assert res.get_json()['kind'] == 'RosterLocked'


def test_capacity_increase_promotes_waitlist(flask_app, make_user, login):
    admin, players = _setup(flask_app, make_user, login)
    game = _create_game(admin, max_players=1)
    for _, player in players.values():
        player.post(f"/api/games/{game['id']}/register")

    res = admin.put(f"/api/games/{game['id']}", json={'max_players': 3})
    assert res.status_code == 200
    assert res.get_json()['active_count'] == 3
    assert res.get_json()['waitlist'] == []

    # shrinking never evicts
    res = admin.put(f"/api/games/{game['id']}", json={'max_players': 1})
    assert res.get_json()['active_count'] == 3


def test_mark_paid_sets_fully_paid(flask_app, make_user, login):
    admin, players = _setup(flask_app, make_user, login, players=2)
    game = _create_game(admin)
    ids = []
    for user_id, player in players.values():
        player.post(f"/api/games/{game['id']}/register")
        ids.append(user_id)

    res = admin.put(f"/api/games/{game['id']}/players/{ids[0]}/paid", json={'paid': True})
    assert res.get_json()['registration']['paid'] is True
    assert res.get_json()['game']['fully_paid'] is False
    res = admin.put(f"/api/games/{game['id']}/players/{ids[1]}/paid", json={'paid': True})
    assert res.get_json()['game']['fully_paid'] is True


def test_bringing_the_ball(flask_app, make_user, login):
    admin, players = _setup(flask_app, make_user, login, players=1)
    _, p1 = players['player1']
    game = _create_game(admin)
    assert p1.put(f"/api/games/{game['id']}/register/ball", json={'bringing_the_ball': True}).status_code == 404
    p1.post(f"/api/games/{game['id']}/register")
    res = p1.put(f"/api/games/{game['id']}/register/ball", json={'bringing_the_ball': True})
    assert res.get_json()['registration']['bringing_the_ball'] is True


def test_game_validation_and_not_found(flask_app, make_user, login):
    admin, players = _setup(flask_app, make_user, login, players=1)
    _, p1 = players['player1']
    assert admin.post('/api/games', json={'max_players': 2}).status_code == 400
    assert admin.post('/api/games', json={'date_time': _iso_in(days=1), 'max_players': 0}).status_code == 400
    assert admin.post('/api/games', json={'date_time': _iso_in(days=1), 'max_players': 2, 'pricing_mode': 'free'}).status_code == 400
    assert p1.post('/api/games', json={'date_time': _iso_in(days=1), 'max_players': 2}).status_code == 403
    assert admin.get('/api/games/999').status_code == 404
    assert p1.post('/api/games/999/register').get_json()['kind'] == 'GameNotFound'


def test_game_defaults_follow_latest_game(flask_app, make_user, login):
    admin, _ = _setup(flask_app, make_user, login, players=0)
    defaults = admin.get('/api/games/defaults').get_json()
    assert defaults['max_players'] == 14
    game = _create_game(admin, location_name='Beach', payment_amount=1500)
    defaults = admin.get('/api/games/defaults').get_json()
    assert defaults['location_name'] == 'Beach'
    assert defaults['payment_amount'] == 1500
    expected = datetime.fromisoformat(game['date_time']) + timedelta(days=7)
    assert defaults['date_time'] == expected.isoformat()


def test_delete_game(flask_app, make_user, login):
    admin, players = _setup(flask_app, make_user, login, players=1)
    _, p1 = players['player1']
    game = _create_game(admin)
    p1.post(f"/api/games/{game['id']}/register")
    assert p1.delete(f"/api/games/{game['id']}").status_code == 403
    assert admin.delete(f"/api/games/{game['id']}").status_code == 204
    assert admin.get(f"/api/games/{game['id']}").status_code == 404


def test_slot_administrator_and_priority_players(flask_app, make_user, login):
    admin, players = _setup(flask_app, make_user, login, players=3)
    (manager_id, manager), (vip_id, vip), (_, regular) = (
        players['player1'], players['player2'], players['player3']
    )
    date_time = utcnow().replace(microsecond=0) + timedelta(days=5)

    res = admin.post('/api/admin/game-administrators', json={'day_of_week': date_time.weekday(), 'user_id': manager_id})
    assert res.status_code == 201
    assignment = res.get_json()
    duplicate = admin.post('/api/admin/game-administrators', json={'day_of_week': date_time.weekday(), 'user_id': vip_id})
    assert duplicate.status_code == 409
    assert manager.post('/api/admin/game-administrators', json={'day_of_week': 1, 'user_id': manager_id}).status_code == 403

    priority_url = f"/api/admin/game-administrators/{assignment['id']}/priority-players"
    assert regular.post(priority_url, json={'user_id': vip_id}).status_code == 403
    assert manager.post(priority_url, json={'user_id': vip_id}).status_code == 201
    assert manager.post(priority_url, json={'user_id': vip_id}).status_code == 409

    res = manager.post('/api/games', json={
        'date_time': date_time.isoformat(), 'max_players': 4, 'with_priority_players': True,
    })
    assert res.status_code == 201
    game = res.get_json()

    assert vip.post(f"/api/games/{game['id']}/register").status_code == 201
    res = regular.post(f"/api/games/{game['id']}/register")
    assert res.get_json()['kind'] == 'RegistrationNotYetOpen'

    assert manager.delete(f'{priority_url}/{vip_id}').status_code == 204
    assert admin.delete(f"/api/admin/game-administrators/{assignment['id']}").status_code == 204


def test_each_client_keeps_its_own_login(flask_app, make_user, login):
    admin, players = _setup(flask_app, make_user, login, players=1)
    _, p1 = players['player1']
    assert admin.get('/users/me').get_json()['username'] == 'admin'
    assert p1.get('/users/me').get_json()['username'] == 'player1'
    assert admin.get('/users/me').get_json()['is_admin'] is True


def test_admin_add_coerces_user_id(flask_app, make_user, login):
    admin, players = _setup(flask_app, make_user, login, players=1)
    p1_id, p1 = players['player1']
    game = _create_game(admin)
    url = f"/api/games/{game['id']}/participants"
    assert p1.post(f"/api/games/{game['id']}/register").status_code == 201

    res = admin.post(url, json={'user_id': str(p1_id)})
    assert res.status_code == 409
    assert res.get_json()['kind'] == 'AlreadyRegistered'
    assert admin.post(url, json={'user_id': 'abc'}).status_code == 400
    assert admin.post(url, json={}).status_code == 400

    view = admin.get(f"/api/games/{game['id']}").get_json()
    assert [p['user_id'] for p in view['players']] == [p1_id]


def test_self_registration_unique_per_game(flask_app, make_user):
    player = make_user('player1')
    with flask_app.app_context():
        game = Game(date_time=utcnow() + timedelta(days=2), max_players=2)
        db.session.add(game)
        db.session.commit()
        db.session.add(Registration(game_id=game.id, user_id=player.id, guest_name='Max'))
        db.session.add(Registration(game_id=game.id, user_id=player.id))
        db.session.commit()
        db.session.add(Registration(game_id=game.id, user_id=player.id))
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()


def test_guest_leave_with_inviter_id_string(flask_app, make_user, login):
    admin, players = _setup(flask_app, make_user, login, players=1)
    p1_id, p1 = players['player1']
    game = _create_game(admin)
    url = f"/api/games/{game['id']}/register"
    assert p1.post(url, json={'guest_name': 'Max'}).status_code == 201

    assert p1.delete(url, json={'guest_name': 'Max', 'inviter_id': 'x'}).status_code == 400
    res = p1.delete(url, json={'guest_name': 'Max', 'inviter_id': str(p1_id)})
    assert res.status_code == 200
    assert res.get_json()['removed']['guest_name'] == 'Max'


def test_lost_insert_race_reports_conflict_kind(flask_app, make_user, login, monkeypatch):
    admin, players = _setup(flask_app, make_user, login, players=1)
    _, p1 = players['player1']
    game = _create_game(admin)

    def _conflict(game, roster):
        raise IntegrityError('INSERT INTO registration', {}, Exception('unique violation'))

    monkeypatch.setattr(games_api, 'sync_roster', _conflict)
    url = f"/api/games/{game['id']}/register"
    res = p1.post(url, json={'guest_name': 'Max'})
    assert res.status_code == 409
    assert res.get_json()['kind'] == 'DuplicateGuestName'
    assert res.get_json()['guest_name'] == 'Max'
    assert p1.post(url).get_json()['kind'] == 'AlreadyRegistered'


def test_game_payload_shows_costs(flask_app, make_user, login):
    admin, players = _setup(flask_app, make_user, login, players=2)
    game = _create_game(admin, max_players=4, payment_amount=2000, pricing_mode='total_cost')
    assert game['per_participant_cost'] == 500
    assert game['total_cost'] == 2000
    for _, player in players.values():
        player.post(f"/api/games/{game['id']}/register")
    view = admin.get(f"/api/games/{game['id']}").get_json()
    assert view['per_participant_cost'] == 1000

    flat = _create_game(admin, max_players=4, payment_amount=700)
    assert flat['per_participant_cost'] == 700
    assert flat['total_cost'] == 2800


def test_user_search(flask_app, make_user, login):
    admin, players = _setup(flask_app, make_user, login, players=2)
    _, p1 = players['player1']
    res = admin.get('/users/search?q=PLAYER')
    assert [u['username'] for u in res.get_json()] == ['player1', 'player2']
    assert admin.get('/users/search?q=%20').status_code == 400
    assert p1.get('/users/search?q=player').status_code == 403


def test_my_game_administrator_assignments(flask_app, make_user, login):
    admin, players = _setup(flask_app, make_user, login, players=2)
    (p1_id, p1), (_, p2) = players['player1'], players['player2']
    admin.post('/api/admin/game-administrators', json={'day_of_week': 2, 'user_id': p1_id})
    admin.post('/api/admin/game-administrators', json={'day_of_week': 4, 'with_positions': True, 'user_id': p1_id})

    mine = p1.get('/api/admin/game-administrators/me').get_json()
    assert [(a['day_of_week'], a['with_positions']) for a in mine] == [(2, False), (4, True)]
    assert p2.get('/api/admin/game-administrators/me').get_json() == []
    # slot administrators may search users too
    assert p1.get('/users/search?q=player').status_code == 200


def test_unpaid_games(flask_app, make_user, login):
    admin, players = _setup(flask_app, make_user, login, players=2)
    (p1_id, p1), (p2_id, p2) = players['player1'], players['player2']
    game = _create_game(admin, max_players=3, payment_amount=1500)
    p1.post(f"/api/games/{game['id']}/register")
    p1.post(f"/api/games/{game['id']}/register", json={'guest_name': 'Max'})
    p2.post(f"/api/games/{game['id']}/register")

    # nothing is owed before payment requests go out
    assert p1.get(f'/users/{p1_id}/unpaid-games').get_json() == []
    admin.put(f"/api/games/{game['id']}", json={'payment_requests_sent': True})
    admin.put(f"/api/games/{game['id']}/players/{p2_id}/paid", json={'paid': True})

    items = p1.get(f'/users/{p1_id}/unpaid-games').get_json()
    assert len(items) == 1
    assert items[0]['game_id'] == game['id']
    assert items[0]['registrations'] == 2
    assert items[0]['guest_names'] == ['Max']
    assert items[0]['total_amount'] == 3000
    assert admin.get(f'/users/{p2_id}/unpaid-games').get_json() == []
    assert p2.get(f'/users/{p1_id}/unpaid-games').status_code == 403
