import pytest

from signflow.app.utils.coordinates import PdfRect, canvas_to_pdf_rect


A4_HEIGHT = 842.0


def test_bottom_left_corner_maps_to_origin():
    rect = canvas_to_pdf_rect(0, A4_HEIGHT - 50, 120, 50, page_height=A4_HEIGHT)

    assert rect == PdfRect(x=0, y=0, width=120, height=50)


def test_top_left_corner_maps_to_top_of_page():
    rect = canvas_to_pdf_rect(10, 0, 100, 40, page_height=A4_HEIGHT)

    assert rect.x == 10
    assert rect.y == A4_HEIGHT - 40


def test_scale_converts_surface_units_to_points():
    # 96 CSS px per inch → 72 pt per inch.
    scale = 72 / 96
    surface_height = A4_HEIGHT / scale

    rect = canvas_to_pdf_rect(
        0,
        surface_height - 100,
        200,
        100,
        page_height=A4_HEIGHT,
        scale=scale,
    )

    assert rect.width == pytest.approx(150)
    assert rect.height == pytest.approx(75)
    assert rect.y == pytest.approx(0)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"page_height": A4_HEIGHT, "scale": 0},
        {"page_height": A4_HEIGHT, "scale": -1},
        {"page_height": -1},
    ],
)
def test_invalid_geometry_is_rejected(kwargs):
    with pytest.raises(ValueError):
        canvas_to_pdf_rect(0, 0, 10, 10, **kwargs)
