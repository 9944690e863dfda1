# tests/test_message_queue.py

from message_queue import MessageQueue


class FakeResult:
    def __init__(self, row=None, scalar=None):
        self.row = row
        self._scalar = scalar

    def mappings(self):
        return self

    def first(self):
        return self.row

    def scalar(self):
        return self._scalar


class FakeSession:
    def __init__(self, result):
        self.result = result
        self.statements = []
        self.committed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, statement, params):
        self.statements.append((str(statement), params))
        return self.result

    def commit(self):
        self.committed = True


def queue_with(result):
    session = FakeSession(result)
    return MessageQueue(lambda: session, "video_queue"), session


def test_pop_decodes_json_payload():
    queue, session = queue_with(FakeResult(row={"msg_id": 7, "read_ct": 1, "message": '{"videoId": "video-1"}'}))

    message = queue.pop()

    assert message.msg_id == 7
    assert message.read_ct == 1
    assert message.message == {"videoId": "video-1"}
    assert "pgmq.pop" in session.statements[0][0]
    assert session.statements[0][1] == {"queue_name": "video_queue"}
    assert session.committed


def test_pop_passes_through_decoded_payload():
    queue, _ = queue_with(FakeResult(row={"msg_id": 1, "read_ct": None, "message": {"videoId": "v"}}))

    message = queue.pop()

    assert message.message == {"videoId": "v"}
    assert message.read_ct == 0


def test_pop_keeps_undecodable_payload_for_validation():
    queue, _ = queue_with(FakeResult(row={"msg_id": 1, "read_ct": 0, "message": "not json"}))

    assert queue.pop().message == "not json"


def test_pop_empty_queue():
    queue, _ = queue_with(FakeResult(row=None))

    assert queue.pop() is None


def test_archive():
    queue, session = queue_with(FakeResult(scalar=True))

    assert queue.archive(7) is True
    assert session.statements[0][1] == {"queue_name": "video_queue", "msg_id": 7}
    assert session.committed


def test_has_messages():
    queue, _ = queue_with(FakeResult(scalar=3))
    assert queue.has_messages() is True

    queue, _ = queue_with(FakeResult(scalar=0))
    assert queue.has_messages() is False
