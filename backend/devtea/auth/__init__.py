"""Account bootstrap module (mock sign-in).

Issues the stable user id and display name the chat protocol relies on.
Nothing here verifies identity.

Services:
    - UserDirectory: in-memory user store with unique usernames.
"""
