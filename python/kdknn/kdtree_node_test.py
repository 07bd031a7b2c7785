import dataclasses
import unittest

from kdknn.kdtree_node import KdTreeNode
from kdknn.point import make_point


class TestKdTreeNode(unittest.TestCase):
    def test_defaults(self):
        node = KdTreeNode(point=make_point([1.0, 2.0]))
        self.assertIsNone(node.label)
        self.assertEqual(node.level, 0)
        self.assertIsNone(node.left)
        self.assertIsNone(node.right)

    def test_child_annotations(self):
        fields = {field.name: field.type for field in dataclasses.fields(KdTreeNode)}
        self.assertEqual(fields["left"], "KdTreeNode | None")
        self.assertEqual(fields["right"], "KdTreeNode | None")

    def test_axis_cycles_by_level(self):
        point = make_point([0.0, 0.0, 0.0])
        axes = [KdTreeNode(point, level=level).axis(3) for level in range(7)]
        self.assertEqual(axes, [0, 1, 2, 0, 1, 2, 0])

    def test_nodes_compare_by_identity(self):
        point = make_point([0.0])
        self.assertNotEqual(KdTreeNode(point), KdTreeNode(point))


if __name__ == "__main__":
    unittest.main()
