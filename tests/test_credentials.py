import asyncio
import unittest
from unittest import mock

from keyring.errors import NoKeyringError, PasswordSetError

from fakes import MemorySecretStore

from kimi_llm.credentials import API_KEY_ENV_VAR, CredentialStore, KeyringSecretStore
from kimi_llm.errors import AuthError, CredentialNotFound, EnvParseFailure, SecretStoreError
from kimi_llm.types import CredentialSource

API_URL = "https://api.moonshot.cn/v1"


def _store(secrets=None, environ=None, **kwargs) -> tuple[CredentialStore, MemorySecretStore]:
    backend = MemorySecretStore(secrets, **kwargs)
    return CredentialStore(backend, lambda: API_URL, environ=environ or {}), backend


class CredentialStoreTests(unittest.TestCase):
    def test_resolve_from_storage_is_cached(self) -> None:
        store, backend = _store({API_URL: "sk-stored"})

        async def scenario():
            first = await store.resolve()
            second = await store.resolve()
            return first, second

        first, second = asyncio.run(scenario())
        self.assertEqual(first, second)
        self.assertEqual(first.secret, "sk-stored")
        self.assertEqual(first.source, CredentialSource.STORE)
        self.assertEqual(backend.calls, [("get", API_URL)])

    def test_environment_wins_over_storage(self) -> None:
        store, backend = _store({API_URL: "sk-stored"}, environ={API_KEY_ENV_VAR: "sk-env"})
        credential = asyncio.run(store.resolve())
        self.assertEqual(credential.secret, "sk-env")
        self.assertEqual(credential.source, CredentialSource.ENVIRONMENT)
        self.assertTrue(store.from_environment)
        self.assertEqual(backend.calls, [])

    def test_missing_credentials(self) -> None:
        store, _ = _store()
        with self.assertRaises(CredentialNotFound):
            asyncio.run(store.resolve())
        self.assertFalse(store.is_authenticated)
        self.assertEqual(store.source, CredentialSource.UNSET)

    def test_blank_environment_value(self) -> None:
        store, _ = _store({API_URL: "sk-stored"}, environ={API_KEY_ENV_VAR: "  "})
        with self.assertRaises(EnvParseFailure):
            asyncio.run(store.resolve())

    def test_set_writes_storage_and_cache(self) -> None:
        store, backend = _store({API_URL: "sk-old"})

        async def scenario():
            await store.resolve()
            await store.set("sk-new")
            return await store.resolve()

        credential = asyncio.run(scenario())
        self.assertEqual(credential.secret, "sk-new")
        self.assertEqual(backend.secrets[API_URL], "sk-new")

    def test_environment_key_survives_set_until_reset(self) -> None:
        environ = {API_KEY_ENV_VAR: "sk-env"}
        store, backend = _store(environ=environ)

        async def scenario():
            await store.resolve()
            await store.set("sk-typed")
            stored = dict(backend.secrets)
            environ.clear()
            kept = await store.resolve()
            await store.reset()
            with self.assertRaises(CredentialNotFound):
                await store.resolve()
            return stored, kept

        stored, kept = asyncio.run(scenario())
        self.assertEqual(stored, {API_URL: "sk-typed"})
        self.assertEqual(kept.secret, "sk-env")
        self.assertEqual(kept.source, CredentialSource.ENVIRONMENT)
        self.assertEqual(backend.secrets, {})

    def test_reset_clears_cache_even_if_delete_fails(self) -> None:
        store, backend = _store({API_URL: "sk-stored"}, fail_delete=True)

        async def scenario():
            await store.resolve()
            with self.assertLogs("kimi_llm.credentials", level="WARNING"):
                await store.reset()

        asyncio.run(scenario())
        self.assertIsNone(store.current)
        self.assertIn(("delete", API_URL), backend.calls)

    def test_every_mutation_notifies(self) -> None:
        store, _ = _store({API_URL: "sk-stored"})
        seen: list[int] = []
        unsubscribe = store.subscribe(lambda: seen.append(store.version))

        async def scenario():
            await store.resolve()
            await store.set("sk-2")
            await store.reset()

        asyncio.run(scenario())
        self.assertEqual(seen, [1, 2, 3])

        unsubscribe()
        asyncio.run(store.set("sk-3"))
        self.assertEqual(seen, [1, 2, 3])
        self.assertEqual(store.version, 4)

    def test_concurrent_resolve_queries_storage_once(self) -> None:
        store, backend = _store({API_URL: "sk-stored"})

        async def scenario():
            return await asyncio.gather(*(store.resolve() for _ in range(5)))

        results = asyncio.run(scenario())
        self.assertEqual({c.secret for c in results}, {"sk-stored"})
        self.assertEqual(backend.calls, [("get", API_URL)])


class KeyringSecretStoreTests(unittest.TestCase):
    def test_keyring_is_keyed_by_url(self) -> None:
        store = KeyringSecretStore()
        with mock.patch("keyring.get_password", return_value="sk-ring") as get_password, \
                mock.patch("keyring.set_password") as set_password, \
                mock.patch("keyring.delete_password") as delete_password:

            async def scenario():
                value = await store.get(API_URL)
                await store.set(API_URL, "sk-new")
                await store.delete(API_URL)
                return value

            value = asyncio.run(scenario())

        self.assertEqual(value, "sk-ring")
        get_password.assert_called_once_with(API_URL, "Bearer")
        set_password.assert_called_once_with(API_URL, "Bearer", "sk-new")
        delete_password.assert_called_once_with(API_URL, "Bearer")

    def test_missing_keyring_backend_is_an_auth_error(self) -> None:
        store = CredentialStore(KeyringSecretStore(), lambda: API_URL, environ={})
        with mock.patch("keyring.get_password", side_effect=NoKeyringError("No recommended backend")):
            with self.assertRaises(SecretStoreError) as ctx:
                asyncio.run(store.resolve())
        self.assertIsInstance(ctx.exception, AuthError)
        self.assertIsNone(store.current)

    def test_failed_keyring_write_is_translated(self) -> None:
        store = CredentialStore(KeyringSecretStore(), lambda: API_URL, environ={})
        with mock.patch("keyring.set_password", side_effect=PasswordSetError("locked")):
            with self.assertRaises(SecretStoreError):
                asyncio.run(store.set("sk-new"))
        self.assertIsNone(store.current)


if __name__ == "__main__":
    unittest.main()
