"""Trip planner integration service: provider clients, agent webhooks, image moderation."""
