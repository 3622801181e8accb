from abc import ABC, abstractmethod


class CameraAdapter(ABC):
    @abstractmethod
    def capture_photo(self, settings, delegate):
        """Run one capture, delivering the delegate's on_* events strictly in sequence:

        on_capture_will_begin → on_will_capture → [on_live_movie_eventually_at]
        → on_photo_processed → [on_live_movie_finished] → on_capture_finished
        """
        ...

    def release(self):
        pass
