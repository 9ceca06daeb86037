import os
import sys
import unittest
from pathlib import Path
from unittest.mock import patch

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from sidekick.config import Settings


class SettingsTests(unittest.TestCase):
    def test_environment_overrides(self):
        env = {
            "GROQ_API_KEY": "gsk-test",
            "DEFAULT_PROVIDER": "groq",
            "REQUEST_TIMEOUT": "5",
            "NODE_NAMESPACES": '["n8n-nodes-base"]',
        }
        with patch.dict(os.environ, env):
            settings = Settings(_env_file=None)

        self.assertEqual(settings.default_provider, "groq")
        self.assertEqual(settings.request_timeout, 5.0)
        self.assertEqual(settings.node_namespaces, ["n8n-nodes-base"])
        self.assertEqual(settings.credential_for("GROQ"), "gsk-test")

    def test_keyless_provider_has_no_credential(self):
        settings = Settings(_env_file=None)
        self.assertIsNone(settings.credential_for("ollama"))
        self.assertEqual(settings.ollama_base_url, "http://localhost:11434")


if __name__ == "__main__":
    unittest.main()
