from screen_locator.visualization.overlay import draw_labeled_regions, draw_region, save_debug_image

__all__ = ["draw_labeled_regions", "draw_region", "save_debug_image"]
