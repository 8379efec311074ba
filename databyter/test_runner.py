from django.test.runner import DiscoverRunner

class NoDBTestRunner(DiscoverRunner):
    """Test runner for a project whose only store is MongoDB"""

    def setup_databases(self, **kwargs):
        """Override to not create a SQL test database"""
        return {}

    def teardown_databases(self, old_config, **kwargs):
        """Nothing to destroy"""
        pass
