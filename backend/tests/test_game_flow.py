import pytest

from sketchbluff.realtime.events import Disconnect, PhaseExpired

ROOM = 'r1'


@pytest.fixture()
def room(join):
    """Alice (leader), Bob, Cara and Dan in one room."""
    for sid, name in [('a', 'Alice'), ('b', 'Bob'), ('c', 'Cara'), ('d', 'Dan')]:
        join(sid, ROOM, name)
    return ROOM


def _start(router, settings=None):
    router.handle('a', 'start-game', {'roomId': ROOM, 'settings': settings or {}})
    return router.sessions[ROOM]


def _to_drawing(router, prompt='banana'):
    session = _start(router)
    session.prompt_choices = [prompt, 'kiwi', 'mango']
    router.handle(session.active_player_id, 'select-prompt', {'roomId': ROOM, 'prompt': prompt})
    return session


def _expire(router, clock, session):
    clock.now = session.deadline_ms
    router.tick(ROOM)


def _option_id(session, text):
    return next(o.id for o in session.options if o.text == text)


def test_start_game_requires_leader(router, transport, room):
    router.handle('b', 'start-game', {'roomId': ROOM, 'settings': {}})
    assert ROOM not in router.sessions
    assert transport.last('b', 'action-error')['error'] == 'not_authorized'


def test_start_game_rejects_single_player(router, transport, join):
    join('a', 'solo', 'Alice')
    router.handle('a', 'start-game', {'roomId': 'solo', 'settings': {}})
    assert 'solo' not in router.sessions
    assert transport.last('a', 'action-error')['message'] == 'not_enough_players'


def test_start_game_broadcasts_private_prompts_to_drawer(router, transport, room):
    transport.clear()
    session = _start(router)

    drawer_state = transport.last('a', 'game-state-update')
    assert drawer_state['gameState'] == 'prompt_selection'
    assert drawer_state['drawingPrompts'] == session.prompt_choices
    assert len(transport.received('a', 'game-state-update')) == 1

    guesser_state = transport.last('b', 'game-state-update')
    assert guesser_state['activePlayer'] == {'id': 'a', 'name': 'Alice'}
    assert guesser_state['currentRound'] == 1
    assert guesser_state['totalRounds'] == 3
    assert 'drawingPrompts' not in guesser_state


def test_second_start_is_ignored(router, transport, room):
    session = _start(router)
    router.handle('a', 'start-game', {'roomId': ROOM, 'settings': {}})
    assert router.sessions[ROOM] is session


def test_drawing_updates_relay_to_others(router, transport, room):
    _to_drawing(router)
    transport.clear()

    router.handle('a', 'drawing-update', {'roomId': ROOM, 'dataUrl': 'data:image/png;base64,AAA'})
    router.handle('b', 'drawing-update', {'roomId': ROOM, 'dataUrl': 'data:image/png;base64,EVIL'})

    assert transport.received('b', 'drawing-update') == [{'dataUrl': 'data:image/png;base64,AAA'}]
    assert transport.received('a', 'drawing-update') == []
    assert router.sessions[ROOM].drawing == 'data:image/png;base64,AAA'


def test_drawing_timer_moves_to_lies_even_without_drawing(router, transport, clock, join):
    for sid, name in [('a', 'Alice'), ('b', 'Bob'), ('c', 'Cara')]:
        join(sid, ROOM, name)
    session = _to_drawing(router)
    assert session.phase == 'drawing'

    _expire(router, clock, session)

    assert session.phase == 'submitting_lies'
    assert transport.last('b', 'game-state-update')['gameState'] == 'submitting_lies'


def test_timer_updates_are_emitted_once_per_second(router, transport, clock, room):
    session = _start(router)
    transport.clear()

    router.tick(ROOM)
    router.tick(ROOM)
    clock.advance(1)
    router.tick(ROOM)

    assert transport.received('b', 'timer-update') == [{'secondsRemaining': 15}, {'secondsRemaining': 14}]
    assert session.phase == 'prompt_selection'


def test_prompt_timer_auto_selects(router, clock, room):
    session = _start(router)
    first = session.prompt_choices[0]
    _expire(router, clock, session)
    assert session.phase == 'drawing'
    assert session.prompt == first


def test_stale_expiry_is_ignored(router, room):
    session = _start(router)
    router.dispatch(None, PhaseExpired(room_id=ROOM, phase='voting', round=1))
    router.dispatch(None, PhaseExpired(room_id=ROOM, phase='prompt_selection', round=7))
    assert session.phase == 'prompt_selection'


def test_second_lie_is_rejected(router, transport, clock, room):
    session = _to_drawing(router)
    _expire(router, clock, session)
    transport.clear()

    router.handle('b', 'submit-lie', {'roomId': ROOM, 'lie': 'plantain', 'submitterId': 'b', 'submitterName': 'Bob'})
    router.handle('b', 'submit-lie', {'roomId': ROOM, 'lie': 'yellow boat', 'submitterId': 'b', 'submitterName': 'Bob'})

    assert session.lies['b'].text == 'plantain'
    assert transport.last('b', 'action-error')['error'] == 'duplicate_action'
    progress = transport.last('c', 'lies-update')
    assert progress == [{'id': session.lies['b'].id, 'playerId': 'b', 'playerName': 'Bob', 'text': None}]


def test_all_lies_in_opens_voting(router, transport, clock, room):
    session = _to_drawing(router)
    _expire(router, clock, session)

    for sid in ('b', 'c', 'd'):
        router.handle(sid, 'submit-lie', {'roomId': ROOM, 'lie': f'lie from {sid}'})

    assert session.phase == 'voting'
    options_for_b = transport.last('b', 'lies-update')
    assert len(options_for_b) == 4
    own = [o for o in options_for_b if o['playerId'] == 'b']
    assert [o['text'] for o in own] == ['lie from b']
    assert all(o['playerId'] is None for o in transport.last('a', 'lies-update'))


def test_full_round_scoring(router, transport, clock, room):
    session = _to_drawing(router, prompt='banana')
    _expire(router, clock, session)
    router.handle('b', 'submit-lie', {'roomId': ROOM, 'lie': 'plantain'})
    _expire(router, clock, session)
    assert session.phase == 'voting'

    truth = _option_id(session, 'banana')
    decoy = _option_id(session, 'plantain')
    router.handle('a', 'vote', {'roomId': ROOM, 'lieId': truth})
    router.handle('b', 'vote', {'roomId': ROOM, 'lieId': truth})
    router.handle('c', 'vote', {'roomId': ROOM, 'lieId': truth})
    router.handle('d', 'vote', {'roomId': ROOM, 'lieId': decoy})

    assert session.phase == 'results'
    results = transport.last('c', 'round-results')
    assert results['prompt'] == 'banana'
    assert results['scores']['a']['total'] == 1000
    assert results['scores']['b']['total'] == 100
    assert transport.last('a', 'action-error')['error'] == 'not_authorized'
    assert transport.last('c', 'game-state-update')['prompt'] == 'banana'


def test_vote_before_voting_phase_is_dropped(router, transport, room):
    session = _to_drawing(router)
    transport.clear()
    router.handle('b', 'vote', {'roomId': ROOM, 'lieId': 'whatever'})
    assert session.votes == {}
    assert transport.sent == []


def test_next_round_rotates_drawer(router, transport, clock, room):
    session = _to_drawing(router)
    for _ in range(3):
        _expire(router, clock, session)
    assert session.phase == 'results'

    router.handle('b', 'next-round', {'roomId': ROOM})
    assert session.round == 1

    router.handle('a', 'next-round', {'roomId': ROOM})
    assert session.round == 2
    assert session.phase == 'prompt_selection'
    assert session.active_player_id == 'b'
    assert transport.last('b', 'game-state-update')['drawingPrompts'] == session.prompt_choices


def test_last_round_resets_game(router, transport, clock, room):
    router.handle('a', 'start-game', {'roomId': ROOM, 'settings': {'totalRounds': 1}})
    session = router.sessions[ROOM]
    for _ in range(4):
        _expire(router, clock, session)
    assert session.phase == 'results'

    router.handle('a', 'next-round', {'roomId': ROOM})

    assert ROOM not in router.sessions
    assert transport.last('d', 'game-reset') == {}
    assert transport.last('d', 'game-state-update') == {'gameState': 'waiting'}
    assert router.tick(ROOM) is False


def test_end_game_by_leader_only(router, transport, room):
    _start(router)
    router.handle('c', 'end-game', {'roomId': ROOM})
    assert ROOM in router.sessions

    router.handle('a', 'end-game', {'roomId': ROOM})
    assert ROOM not in router.sessions
    assert transport.last('b', 'game-reset') == {}


def test_active_player_disconnect_mid_round(router, transport, clock, join):
    for sid, name in [('a', 'Alice'), ('b', 'Bob'), ('c', 'Cara')]:
        join(sid, ROOM, name)
    session = _to_drawing(router, prompt='banana')

    router.dispatch('a', Disconnect())
    assert router.directory.leader_of(ROOM) == 'b'
    assert session.phase == 'drawing'

    _expire(router, clock, session)
    router.handle('b', 'submit-lie', {'roomId': ROOM, 'lie': 'plantain'})
    router.handle('c', 'submit-lie', {'roomId': ROOM, 'lie': 'melon'})
    assert session.phase == 'voting'

    truth = _option_id(session, 'banana')
    router.handle('b', 'vote', {'roomId': ROOM, 'lieId': truth})
    router.handle('c', 'vote', {'roomId': ROOM, 'lieId': _option_id(session, 'plantain')})
    assert session.phase == 'results'
    assert session.scores['a'].total == 500
    assert session.scores['b'].total == 100

    router.handle('b', 'next-round', {'roomId': ROOM})
    assert session.active_player_id == 'b'
    assert session.round == 2


def test_leaver_was_last_pending_voter(router, clock, room):
    session = _to_drawing(router)
    _expire(router, clock, session)
    _expire(router, clock, session)
    truth = _option_id(session, 'banana')
    router.handle('b', 'vote', {'roomId': ROOM, 'lieId': truth})
    router.handle('c', 'vote', {'roomId': ROOM, 'lieId': truth})
    assert session.phase == 'voting'

    router.handle('d', 'leave-room', {'roomId': ROOM, 'userName': 'Dan'})
    assert session.phase == 'results'


def test_everyone_leaving_destroys_session(router, room):
    _start(router)
    for sid in ('a', 'b', 'c', 'd'):
        router.handle(sid, 'leave-room', {'roomId': ROOM})
    assert ROOM not in router.sessions
    assert ROOM not in router.directory


def test_late_joiner_gets_current_state(router, transport, clock, room, join):
    session = _to_drawing(router)
    router.handle('a', 'drawing-update', {'roomId': ROOM, 'dataUrl': 'data:image/png;base64,AAA'})

    join('e', ROOM, 'Eve')
    assert transport.last('e', 'game-state-update')['gameState'] == 'drawing'
    assert 'prompt' not in transport.last('e', 'game-state-update')
    assert transport.last('e', 'drawing-update') == {'dataUrl': 'data:image/png;base64,AAA'}
    assert session.active_player_id == 'a'


def test_joiner_during_voting_gets_options_and_can_vote(router, transport, clock, join):
    for sid, name in [('a', 'Alice'), ('b', 'Bob'), ('c', 'Cara')]:
        join(sid, ROOM, name)
    session = _to_drawing(router)
    _expire(router, clock, session)
    _expire(router, clock, session)
    assert session.phase == 'voting'

    join('e', ROOM, 'Eve')
    options = transport.last('e', 'lies-update')
    assert [o['text'] for o in options] == ['banana']

    truth = options[0]['id']
    for sid in ('b', 'c'):
        router.handle(sid, 'vote', {'roomId': ROOM, 'lieId': truth})
    assert session.phase == 'voting'

    router.handle('e', 'vote', {'roomId': ROOM, 'lieId': truth})
    assert session.phase == 'results'
    assert session.scores['a'].total == 1500


def test_joiner_during_results_gets_round_results(router, transport, clock, room, join):
    session = _to_drawing(router)
    for _ in range(3):
        _expire(router, clock, session)
    assert session.phase == 'results'

    join('e', ROOM, 'Eve')
    results = transport.last('e', 'round-results')
    assert results == session.last_results
    assert results['prompt'] == 'banana'
