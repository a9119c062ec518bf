"""Draw scheduling, ticket-number allocation and prize settlement engine."""
