"""
Setup script for the taskflow package.
This file provides additional setup functionality beyond pyproject.toml.
"""

from pathlib import Path

from setuptools import setup
from setuptools.command.develop import develop
from setuptools.command.install import install


class PostInstallCommand(install):
    """Custom post-installation for installation mode."""

    def run(self):
        install.run(self)
        self._post_install_setup()

    def _post_install_setup(self):
        """Write a configuration template to ~/.taskflow/config.env if none exists."""
        print("🔧 Setting up Taskflow configuration...")

        try:
            # Import after installation to ensure package is available
            from taskflow.utils.config import get_config_manager

            config_file = Path.home() / ".taskflow" / "config.env"
            if not config_file.exists():
                template_path = get_config_manager().create_config_template(config_file)
                print(f"✅ Created configuration template: {template_path}")
                print("📝 Copy it to .env in your working directory and point DATABASE_URL at your database.")
            else:
                print(f"ℹ️  Configuration file already exists: {config_file}")

            print("🎉 Taskflow installation completed successfully!")
            print()
            print("Next steps:")
            print("  1. Run: taskflow --config-status")
            print("  2. Run: taskflow init-db")
            print("  3. Start using: taskflow --help")

        except Exception as e:
            print(f"⚠️  Post-installation setup encountered an issue: {e}")
            print("You can manually run 'taskflow --config-create PATH' after installation.")


class PostDevelopCommand(develop):
    """Custom post-installation for development mode."""

    def run(self):
        develop.run(self)
        print("🔧 Development mode installation completed.")
        print("Run 'taskflow --config-status' to check your configuration.")


# Use pyproject.toml for main configuration, but provide custom commands
setup(
    cmdclass={
        "install": PostInstallCommand,
        "develop": PostDevelopCommand,
    },
)
