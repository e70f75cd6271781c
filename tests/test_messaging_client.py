import json
import unittest

import httpx

from chatsync.clients.messaging_client import MessagingClient
from chatsync.utils.errors import (
    ConversationNotFoundError,
    ForbiddenError,
    NotFoundError,
    SelfTargetError,
    TransportError,
    ValidationError,
)

from tests.fakes import NOW


def chat_document(chat_id="c1", other_id="u2", priority_until=None):
    return {
        "id": chat_id,
        "createdAt": "2026-02-20T10:00:00.000Z",
        "lastActivity": "2026-03-01T11:00:00.000Z",
        "unreadCount": 2,
        "otherUser": {
            "id": other_id,
            "firstName": "Marta",
            "lastName": "Diaz",
            "username": "mdiaz",
            "userType": "CLIENT",
            "client": {"chatPriorityUntil": priority_until},
        },
        "lastMessage": {"content": "see you", "createdAt": "2026-03-01T11:00:00.000Z"},
    }


def envelope(data, status=200):
    return httpx.Response(status, json={"success": True, "data": data})


def failure(status, message="nope", error_code=None):
    body = {"success": False, "message": message}
    if error_code:
        body["errorCode"] = error_code
    return httpx.Response(status, json=body)


class ClientTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.requests = []
        self.responses = []
        self.delays = []

    async def asyncTearDown(self):
        await self.client.aclose()

    def build(self, *responses, attempts=3):
        self.responses = list(responses)

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            response = self.responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response

        async def sleep(delay):
            self.delays.append(delay)

        self.client = MessagingClient(
            "http://messaging.test/api",
            token="secret",
            retry_attempts=attempts,
            transport=httpx.MockTransport(handler),
            sleep=sleep,
        )
        return self.client


class TestGetOrCreate(ClientTestCase):
    async def test_posts_receiver_and_parses_chat(self):
        client = self.build(envelope({"chat": chat_document(priority_until="2026-03-01T13:00:00Z"), "isNew": True}))

        resolved = await client.get_or_create_conversation("u2")

        request = self.requests[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(request.url.path, "/api/chat")
        self.assertEqual(json.loads(request.content), {"receiverId": "u2"})
        self.assertEqual(request.headers["Authorization"], "Bearer secret")
        self.assertTrue(resolved.is_new)
        conversation = resolved.conversation
        self.assertEqual(conversation.id, "c1")
        self.assertEqual(conversation.counterpart.display_name, "Marta Diaz")
        self.assertEqual(conversation.unread_count, 2)
        self.assertEqual(conversation.last_message_preview.content, "see you")
        self.assertGreater(conversation.counterpart.priority_expires_at, NOW)

    async def test_unreadable_priority_means_none(self):
        client = self.build(envelope({"chat": chat_document(priority_until="not a date")}))

        resolved = await client.get_or_create_conversation("u2")

        self.assertIsNone(resolved.conversation.counterpart.priority_expires_at)
        self.assertFalse(resolved.is_new)

    async def test_self_target_error_code(self):
        client = self.build(failure(400, "Cannot chat with yourself", "CANNOT_CHAT_WITH_SELF"))

        with self.assertRaises(SelfTargetError) as caught:
            await client.get_or_create_conversation("user-me")

        self.assertEqual(caught.exception.kind, "conflict")
        self.assertEqual(self.delays, [])

    async def test_forbidden_and_missing_user(self):
        client = self.build(failure(403, "Clients cannot start chats"), failure(404, "User not found"))

        with self.assertRaises(ForbiddenError):
            await client.get_or_create_conversation("u2")
        with self.assertRaises(NotFoundError) as caught:
            await client.get_or_create_conversation("u3")

        self.assertNotIsInstance(caught.exception, ConversationNotFoundError)

    async def test_empty_target_never_hits_network(self):
        client = self.build()

        with self.assertRaises(ValidationError):
            await client.get_or_create_conversation("")

        self.assertEqual(self.requests, [])

    async def test_chat_without_counterpart_is_bad_response(self):
        document = chat_document()
        del document["otherUser"]
        client = self.build(envelope({"chat": document}))

        with self.assertRaises(TransportError) as caught:
            await client.get_or_create_conversation("u2")

        self.assertEqual(caught.exception.code, "BAD_RESPONSE")


class TestRetries(ClientTestCase):
    async def test_server_errors_retry_with_backoff(self):
        client = self.build(
            failure(503, "busy"),
            failure(503, "busy"),
            envelope({"chat": chat_document()}),
        )

        resolved = await client.get_or_create_conversation("u2")

        self.assertEqual(resolved.conversation.id, "c1")
        self.assertEqual(len(self.requests), 3)
        self.assertEqual(self.delays, [1.0, 2.0])

    async def test_network_failure_exhausts_attempts(self):
        client = self.build(*[httpx.ConnectError("refused") for _ in range(3)])

        with self.assertRaises(TransportError) as caught:
            await client.list_conversations()

        self.assertEqual(caught.exception.code, "NETWORK_ERROR")
        self.assertTrue(caught.exception.retryable)
        self.assertEqual(len(self.requests), 3)
        self.assertEqual(self.delays, [1.0, 2.0])

    async def test_timeout_is_transport(self):
        client = self.build(httpx.ReadTimeout("slow"), attempts=1)

        with self.assertRaises(TransportError) as caught:
            await client.list_messages("c1")

        self.assertEqual(caught.exception.code, "TIMEOUT")
        self.assertEqual(self.delays, [])

    async def test_client_errors_are_not_retried(self):
        client = self.build(failure(400, "Message content is required"))

        with self.assertRaises(ValidationError):
            await client.send_message("c1", "hi")

        self.assertEqual(len(self.requests), 1)
        self.assertEqual(self.delays, [])


class TestListing(ClientTestCase):
    async def test_list_conversations_params_and_pagination(self):
        bad = chat_document("c2")
        del bad["otherUser"]
        client = self.build(envelope({
            "chats": [chat_document("c1"), bad],
            "pagination": {"page": 2, "limit": 10, "total": 11, "hasMore": False},
        }))

        page = await client.list_conversations(page=2, limit=10, search="mar")

        params = self.requests[0].url.params
        self.assertEqual(params["page"], "2")
        self.assertEqual(params["limit"], "10")
        self.assertEqual(params["search"], "mar")
        self.assertEqual([c.id for c in page.conversations], ["c1"])
        self.assertEqual(page.pagination.total, 11)

    async def test_list_messages_missing_conversation(self):
        client = self.build(failure(404, "Chat not found"))

        with self.assertRaises(ConversationNotFoundError):
            await client.list_messages("gone")

    async def test_list_messages_parses_history(self):
        client = self.build(envelope({
            "messages": [
                {"id": "m1", "chatId": "c1", "senderId": "u2", "content": "hi", "messageType": "TEXT", "createdAt": "2026-03-01T10:00:00Z"},
                {"id": "m2", "chatId": "c1", "senderId": "user-me", "content": "hey", "createdAt": "2026-03-01T10:01:00Z"},
            ],
            "pagination": {"page": 1, "limit": 50, "hasMore": True},
        }))

        page = await client.list_messages("c1")

        self.assertEqual([m.id for m in page.messages], ["m1", "m2"])
        self.assertTrue(page.pagination.has_more)
        self.assertFalse(any(m.is_mine for m in page.messages))


class TestSendMessage(ClientTestCase):
    async def test_send_posts_text_message(self):
        client = self.build(envelope({
            "id": "m9", "chatId": "c1", "senderId": "user-me", "content": "hello", "createdAt": "2026-03-01T12:05:00Z",
        }, status=201))

        message = await client.send_message("c1", "hello")

        request = self.requests[0]
        self.assertEqual(request.url.path, "/api/chat/c1/messages")
        self.assertEqual(json.loads(request.content), {"content": "hello", "messageType": "TEXT"})
        self.assertEqual(message.id, "m9")
        self.assertFalse(message.is_temporary)

    async def test_blank_send_makes_no_request(self):
        client = self.build()

        with self.assertRaises(ValidationError):
            await client.send_message("c1", "   ")

        self.assertEqual(self.requests, [])


if __name__ == "__main__":
    unittest.main()
