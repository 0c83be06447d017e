class BaseRepository:
    def save(self, item) -> None:
        raise NotImplementedError
