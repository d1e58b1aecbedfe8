class UnknownSessionError(LookupError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f'Session with sessionId "{session_id}" does not exist.')
        self.session_id = session_id
