"""
API layer tests: submission, query, artifacts, voices and health.
"""
import pytest

from postreader.services.event_bus import JOB_CREATED

from tests.conftest import FAKE_AUDIO


class TestSubmissionEndpoint:
    """Tests for POST /."""

    @pytest.mark.asyncio
    async def test_submit_returns_id(self, client):
        response = await client.post('/', json={'text': 'hello', 'voice': 'en-US-1'})

        assert response.status_code == 201
        assert set(response.json()) == {'id'}

    @pytest.mark.asyncio
    async def test_submitted_job_is_pending(self, client):
        create = await client.post('/', json={'text': 'hello', 'voice': 'en-US-1'})
        job_id = create.json()['id']

        response = await client.get('/', params={'postId': job_id})

        assert response.status_code == 200
        data = response.json()
        assert data['id'] == job_id
        assert data['status'] == 'PENDING'
        assert data['artifact_ref'] is None

    @pytest.mark.asyncio
    async def test_empty_text_is_bad_request(self, client):
        response = await client.post('/', json={'text': '  ', 'voice': 'en-US-1'})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_voice_is_bad_request(self, client):
        response = await client.post('/', json={'text': 'hello', 'voice': 'nobody'})

        assert response.status_code == 400
        assert 'nobody' in response.json()['detail']

    @pytest.mark.asyncio
    async def test_missing_fields_fail_schema_validation(self, client):
        response = await client.post('/', json={'text': 'hello'})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_bus_unavailable_is_service_unavailable(self, client, bus):
        await bus.start()
        await bus.stop()

        response = await client.post('/', json={'text': 'hello', 'voice': 'en-US-1'})

        assert response.status_code == 503


class TestQueryEndpoint:
    """Tests for GET /?postId=."""

    @pytest.mark.asyncio
    async def test_unknown_id_is_not_found(self, client):
        response = await client.get('/', params={'postId': 'never-submitted'})

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_post_id_is_required(self, client):
        response = await client.get('/')

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_wildcard_lists_all_posts(self, client):
        await client.post('/', json={'text': 'one', 'voice': 'en-US-1'})
        await client.post('/', json={'text': 'two', 'voice': 'en-GB-2'})

        response = await client.get('/', params={'postId': '*'})

        assert response.status_code == 200
        data = response.json()
        assert isinstance(data, list)
        assert {post['text'] for post in data} == {'one', 'two'}


class TestCors:

    @pytest.mark.asyncio
    async def test_wildcard_origin_allowed(self, client):
        response = await client.get(
            '/',
            params={'postId': 'never-submitted'},
            headers={'Origin': 'http://example.com'},
        )

        assert response.headers['access-control-allow-origin'] == '*'

    @pytest.mark.asyncio
    async def test_preflight(self, client):
        response = await client.options(
            '/',
            headers={
                'Origin': 'http://example.com',
                'Access-Control-Request-Method': 'POST',
            },
        )

        assert response.status_code == 200
        assert response.headers['access-control-allow-origin'] == '*'


class TestWorkflow:
    """End-to-end runs through the bus and the worker."""

    @pytest.mark.asyncio
    async def test_submit_process_query(self, client, bus, worker):
        bus.subscribe(JOB_CREATED, worker.handle_event)
        await bus.start()

        create = await client.post('/', json={'text': 'hello', 'voice': 'en-US-1'})
        job_id = create.json()['id']
        assert await bus.drain(timeout=5.0)

        data = (await client.get('/', params={'postId': job_id})).json()
        assert data['status'] == 'COMPLETE'
        assert data['artifact_ref'] == f'/artifacts/{job_id}.wav'

        audio = await client.get(data['artifact_ref'])
        assert audio.status_code == 200
        assert audio.headers['content-type'] == 'audio/wav'
        assert audio.content == FAKE_AUDIO

    @pytest.mark.asyncio
    async def test_conversion_failure_is_visible(self, client, bus, worker, synthesizer):
        synthesizer.failures['explode'] = RuntimeError('synthesis backend error')
        bus.subscribe(JOB_CREATED, worker.handle_event)
        await bus.start()

        create = await client.post('/', json={'text': 'explode', 'voice': 'en-US-1'})
        job_id = create.json()['id']
        assert await bus.drain(timeout=5.0)

        data = (await client.get('/', params={'postId': job_id})).json()
        assert data['status'] == 'FAILED'
        assert data['artifact_ref'] is None
        assert 'synthesis backend error' in data['error_message']


class TestArtifactEndpoint:

    @pytest.mark.asyncio
    async def test_missing_artifact_is_not_found(self, client):
        response = await client.get('/artifacts/unknown.wav')

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_unsafe_name_is_not_found(self, client, artifact_store):
        await artifact_store.put('job-1', FAKE_AUDIO)

        response = await client.get('/artifacts/..%2Fjob-1.wav')

        assert response.status_code == 404


class TestVoicesAndHealth:

    @pytest.mark.asyncio
    async def test_list_voices(self, client):
        response = await client.get('/voices')

        assert response.status_code == 200
        ids = [v['id'] for v in response.json()['voices']]
        assert ids == ['en-US-1', 'en-GB-2']

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get('/health')

        assert response.status_code == 200
        data = response.json()
        assert data['status'] == 'ok'
        assert data['synthesizer_ready'] is True
        assert data['available_voices'] == ['en-US-1', 'en-GB-2']
        assert data['dead_letters'] == 0
