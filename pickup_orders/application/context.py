from typing import Optional


class ViewerContext:
    """Identity and lifetime of one viewer session (a vendor queue or a customer tracker).

    Passed explicitly to everything that acts for the viewer; nothing is kept at module level.
    """

    def __init__(self, viewer_id: str, vendor_id: Optional[str] = None):
        self.viewer_id = viewer_id
        self.vendor_id = vendor_id
        self._live = True

    @property
    def is_live(self) -> bool:
        return self._live

    def close(self):
        self._live = False

    def __repr__(self) -> str:
        return f"ViewerContext(viewer_id={self.viewer_id!r}, vendor_id={self.vendor_id!r}, live={self._live})"
