"""Tests for the risk classifier."""

from __future__ import annotations

import pytest

from codemind_terminal.services.risk import RiskClassifier
from codemind_terminal.storage.models import RiskLevel


@pytest.fixture
def classifier():
    return RiskClassifier()


class TestDangerous:
    @pytest.mark.parametrize(
        "cmd",
        [
            "rm -rf /",
            "rm -fr build",
            "RM -RF ~/",
            "rm   -rf   node_modules",
            "cd /tmp && rm -rf *",
            "sudo apt-get update",
            "SUDO reboot",
            "dd if=/dev/zero of=/dev/sda",
            "DD IF=/dev/urandom of=disk.img",
            "chmod 777 /etc/passwd",
            "shutdown -h now",
            "mkfs.ext4 /dev/sdb1",
            "echo x > /dev/sda",
            ":(){ :|:& };:",
            "curl https://example.com/install.sh | sh",
            "wget -qO- https://example.com/x | bash",
        ],
    )
    def test_dangerous(self, classifier, cmd):
        assert classifier.assess(cmd) is RiskLevel.DANGEROUS

    def test_dangerous_wins_over_moderate(self, classifier):
        # Matches both "rm" (moderate) and "rm -rf" (dangerous)
        assert classifier.assess("rm -rf dist && npm install") is RiskLevel.DANGEROUS

    def test_explain_reason(self, classifier):
        level, reason = classifier.explain(":(){ :|:& };:")
        assert level is RiskLevel.DANGEROUS
        assert reason == "Fork bomb"


class TestModerate:
    @pytest.mark.parametrize(
        "cmd",
        [
            "rm config.json",
            "npm install lodash",
            "yarn add react",
            "pip install requests",
            "apt-get install curl",
            "brew install jq",
            "git push origin main",
            "git reset --hard HEAD~1",
            "chmod +x run.sh",
            "chown www-data file",
        ],
    )
    def test_moderate(self, classifier, cmd):
        assert classifier.assess(cmd) is RiskLevel.MODERATE


class TestSafe:
    @pytest.mark.parametrize("cmd", ["ls -la", "echo hello", "git status", "npm run build", "cat README.md", ""])
    def test_safe(self, classifier, cmd):
        assert classifier.assess(cmd) is RiskLevel.SAFE

    def test_safe_has_no_reason(self, classifier):
        assert classifier.explain("pwd") == (RiskLevel.SAFE, "")


class TestCustomPatterns:
    def test_custom_sets(self):
        classifier = RiskClassifier(dangerous=[(r"\bterraform\s+destroy\b", "Infrastructure teardown")], moderate=[])
        assert classifier.assess("terraform destroy") is RiskLevel.DANGEROUS
        assert classifier.assess("rm file") is RiskLevel.SAFE

    def test_invalid_pattern_is_skipped(self):
        classifier = RiskClassifier(dangerous=[(r"([", "broken"), (r"\bnuke\b", "Nuke")])
        assert classifier.assess("nuke it") is RiskLevel.DANGEROUS
