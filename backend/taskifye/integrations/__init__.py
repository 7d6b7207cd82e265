"""Third-party CRM and messaging integrations."""
